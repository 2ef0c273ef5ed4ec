"""reelpipe: split, transcode and place video files for a media library."""

__version__ = "0.1.0"
