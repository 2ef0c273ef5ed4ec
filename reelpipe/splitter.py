"""Splitting of multi-episode files with mkvmerge."""

import logging
import os
import subprocess
import tempfile
from typing import Callable, List, Optional, Sequence, Union

from reelpipe.errors import ResourceError, SplitError

logger = logging.getLogger(__name__)

# mkvmerge exits with 1 when it only emitted warnings
MKVMERGE_WARNING_EXIT = 1


class NullSink:
    """File-like object that discards everything written to it."""

    def write(self, data: str) -> int:
        return len(data)

    def flush(self) -> None:
        pass


def format_split_output_name(output_filename: str, index: int) -> str:
    """Name mkvmerge gives the ``index``-th (0-based) part of a split."""
    stem, ext = os.path.splitext(output_filename)
    return f"{stem}-{index + 1:03d}{ext}"


class Splitter:
    """
    Splits one file into per-episode files.

    Episode boundaries are not computed here: they either come from the
    ``detector`` callable (start timestamps in seconds) or from mkvmerge's
    own chapter splitting.

    Args:
        work_dir: Directory to write parts to
        mkvmerge_path: mkvmerge executable
        chapters: "all", or the chapter numbers to split before
        detector: Callable returning split timestamps (seconds) for an input
        sink: Where mkvmerge's chatter goes on success, discarded by default
        use_lower_priority: Run mkvmerge below normal priority
    """

    def __init__(
        self,
        work_dir: str,
        mkvmerge_path: str = "mkvmerge",
        chapters: Union[str, Sequence[int]] = "all",
        detector: Optional[Callable[[str], List[float]]] = None,
        sink=None,
        use_lower_priority: bool = False,
    ):
        self.work_dir = work_dir
        self.mkvmerge_path = mkvmerge_path
        self.chapters = chapters
        self.detector = detector
        self.sink = sink if sink is not None else NullSink()
        self.use_lower_priority = use_lower_priority

    def _split_arg(self, input_filename: str) -> Optional[str]:
        if self.detector is not None:
            timestamps = [t for t in self.detector(input_filename) if t > 0]
            if not timestamps:
                return None
            return "timestamps:" + ",".join(f"{t:.3f}s" for t in sorted(timestamps))

        if self.chapters == "all":
            return "chapters:all"
        if not self.chapters:
            return None
        return "chapters:" + ",".join(str(int(c)) for c in self.chapters)

    def build_command(self, input_filename: str, output_filename: str, split_arg: str) -> List[str]:
        return [self.mkvmerge_path, "-o", output_filename, "--split", split_arg, input_filename]

    def split(self, input_filename: str) -> List[str]:
        """
        Split an input into episode files.

        Returns:
            Paths of the parts, in playback order. If there is nothing to
            split on, the input itself is the only part.

        Raises:
            SplitError: If mkvmerge fails or produces no parts
        """
        split_arg = self._split_arg(input_filename)
        if split_arg is None:
            logger.warning(f"No episode boundaries for {input_filename}, processing it whole")
            return [input_filename]

        try:
            os.makedirs(self.work_dir, exist_ok=True)
            part_dir = tempfile.mkdtemp(prefix="split-", dir=self.work_dir)
        except OSError as e:
            raise ResourceError(f"could not create split dir in {self.work_dir}: {e}") from e

        output_filename = os.path.join(part_dir, "episode.mkv")
        cmd = self.build_command(input_filename, output_filename, split_arg)

        kwargs = {}
        if self.use_lower_priority and hasattr(os, "nice"):
            kwargs["preexec_fn"] = lambda: os.nice(10)

        logger.info(f"Splitting {input_filename} ({split_arg})")
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, **kwargs)
        except OSError as e:
            raise SplitError(f"could not run mkvmerge: {e}") from e

        output = (result.stdout or "") + (result.stderr or "")
        if result.returncode > MKVMERGE_WARNING_EXIT:
            raise SplitError(
                f"error while splitting {input_filename}", result.returncode, output
            )

        self.sink.write(output)
        self.sink.flush()

        # mkvmerge numbers parts from 001 without gaps
        parts = []
        while os.path.exists(format_split_output_name(output_filename, len(parts))):
            parts.append(format_split_output_name(output_filename, len(parts)))
        if not parts:
            raise SplitError(
                f"mkvmerge produced no parts for {input_filename}", result.returncode, output
            )

        logger.info(f"Split {input_filename} into {len(parts)} parts")
        return parts
