"""Media analysis using ffprobe."""

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Dict

from reelpipe.errors import AnalysisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Stream counts and length estimate for one media file."""

    duration: float = 0.0  # seconds, 0 if unknown
    num_audio_streams: int = 0
    num_subtitle_streams: int = 0
    num_video_streams: int = 0
    total_frames: int = 0


def parse_frame_rate(rate: str) -> float:
    """
    Convert an ffprobe frame rate string to frames per second.

    Args:
        rate: Rate as "numerator/divisor" (e.g. "24000/1001") or a plain number

    Returns:
        Frames per second

    Raises:
        ValueError: If the string isn't a valid rate
    """
    parts = str(rate).strip().split("/")
    if len(parts) == 1:
        parts.append("1")
    if len(parts) != 2:
        raise ValueError(f"invalid frame rate: {rate!r}")

    numerator = float(parts[0])
    divisor = float(parts[1])
    if divisor == 0:
        raise ValueError(f"invalid frame rate: {rate!r}")
    return numerator / divisor


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class Analyzer:
    """Reads stream information and a frame count from a media file."""

    def __init__(self, ffprobe_path: str = "ffprobe", count_frames: bool = True):
        self.ffprobe_path = ffprobe_path
        self.count_frames = count_frames

    def _probe(self, input_filename: str) -> Dict[str, Any]:
        cmd = [self.ffprobe_path, "-v", "error"]
        if self.count_frames:
            cmd.append("-count_frames")
        cmd.extend(["-print_format", "json", "-show_format", "-show_streams", input_filename])

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise AnalysisError(f"could not run ffprobe: {e}") from e

        if result.returncode != 0:
            raise AnalysisError(
                f"error while analyzing {input_filename}",
                result.returncode,
                (result.stdout or "") + (result.stderr or ""),
            )

        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise AnalysisError(f"unreadable ffprobe output for {input_filename}: {e}") from e

    def analyze(self, input_filename: str) -> AnalysisResult:
        logger.info(f"Analyzing {input_filename}")
        info = self._probe(input_filename)
        streams = info.get("streams", [])

        counts = {"audio": 0, "subtitle": 0, "video": 0}
        for stream in streams:
            codec_type = stream.get("codec_type")
            if codec_type in counts:
                counts[codec_type] += 1

        # Frame count and rate come from the first video stream
        video = next((s for s in streams if s.get("codec_type") == "video"), {})
        total_frames = _to_int(video.get("nb_read_frames") or video.get("nb_frames"))

        duration = 0.0
        try:
            fps = parse_frame_rate(video.get("avg_frame_rate", ""))
            if total_frames and fps > 0:
                duration = float(int(total_frames / fps))
        except ValueError as e:
            logger.debug(f"Could not parse frame rate for {input_filename}: {e}")

        if not duration:
            try:
                duration = float(info.get("format", {}).get("duration", 0))
            except (TypeError, ValueError):
                duration = 0.0

        result = AnalysisResult(
            duration=duration,
            num_audio_streams=counts["audio"],
            num_subtitle_streams=counts["subtitle"],
            num_video_streams=counts["video"],
            total_frames=total_frames,
        )
        logger.info(
            f"Analysis results for {input_filename}: frames={result.total_frames} "
            f"duration={result.duration:.0f}s audio={result.num_audio_streams} "
            f"subtitles={result.num_subtitle_streams} video={result.num_video_streams}"
        )
        return result
