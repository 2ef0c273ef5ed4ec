"""ffmpeg option blocks, command runner and progress listener."""
