"""Output file naming, flat or in a media-library folder layout."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from reelpipe.errors import ConfigurationError, PlacementError

logger = logging.getLogger(__name__)

MEDIA_KIND_MOVIE = "movie"
MEDIA_KIND_EPISODE = "episode"
# Older configs call episodic media "tv"
MEDIA_KIND_TV = "tv"

DEFAULT_EXTENSION = ".mkv"
UNKNOWN_NAME = "unknown"


@dataclass
class LibraryNaming:
    """Settings for library-style naming.

    When ``enabled`` is False outputs keep their own file names.
    """

    enabled: bool = False
    title: str = ""
    year: int = 0
    media_kind: str = MEDIA_KIND_EPISODE
    season: int = 1
    first_episode: int = 1

    @property
    def display_name(self) -> str:
        if self.year > 0:
            return f"{self.title} ({self.year})"
        return self.title

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LibraryNaming":
        data = data or {}
        try:
            return cls(
                enabled=bool(data.get("enabled", False)),
                title=str(data.get("title", "")),
                year=int(data.get("year") or 0),
                media_kind=str(data.get("media_kind", MEDIA_KIND_EPISODE)),
                season=int(data.get("season", 1)),
                first_episode=int(data.get("first_episode", 1)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"invalid naming settings: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "title": self.title,
            "year": self.year,
            "media_kind": self.media_kind,
            "season": self.season,
            "first_episode": self.first_episode,
        }


def get_library_path(naming: LibraryNaming, episode: int, ext: str = DEFAULT_EXTENSION) -> str:
    """Relative library path for a movie or an episode."""
    name = naming.display_name

    if naming.media_kind == MEDIA_KIND_MOVIE:
        return os.path.join(name, f"{name}{ext}")
    if naming.media_kind in (MEDIA_KIND_EPISODE, MEDIA_KIND_TV):
        return os.path.join(
            name,
            f"Season {naming.season:02d}",
            f"{name} - s{naming.season:02d}e{episode:02d}{ext}",
        )

    # Unknown kinds don't fail, they all land on the same placeholder name
    logger.warning(f"Unknown media kind '{naming.media_kind}', using placeholder name")
    return f"{UNKNOWN_NAME}{ext}"


def get_output_path(output_dir: str, source_path: str, naming: LibraryNaming, episode: int) -> str:
    """
    Compute where a finished file should be placed.

    Args:
        output_dir: Root output directory
        source_path: The file being placed
        naming: Naming settings
        episode: Current episode number

    Returns:
        Destination path under output_dir
    """
    if not naming.enabled:
        return os.path.join(output_dir, os.path.basename(source_path))

    ext = os.path.splitext(source_path)[1] or DEFAULT_EXTENSION
    return os.path.join(output_dir, get_library_path(naming, episode, ext))


def make_output_dirs(output_path: str) -> None:
    """Create the directories an output path needs."""
    parent = os.path.dirname(output_path)
    if not parent:
        return
    try:
        os.makedirs(parent, mode=0o750, exist_ok=True)
    except OSError as e:
        raise PlacementError(f"could not create output directory {parent}: {e}") from e
