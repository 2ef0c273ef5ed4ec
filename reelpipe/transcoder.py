"""Media transcoding functionality."""

import os
import queue
import logging
import threading
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional

from reelpipe.analyzer import AnalysisResult
from reelpipe.errors import ConfigurationError, ResourceError, TranscodeError
from reelpipe.ffmpeg.options import (
    EncodingOptions,
    GenericAudioOptions,
    Mp4ContainerOptions,
    configure_container_options,
    resolve_encoding_options,
)
from reelpipe.ffmpeg.progress import ProgressListener, ProgressReport
from reelpipe.ffmpeg.runner import Runner

# Configure logging
logger = logging.getLogger(__name__)

# Seconds to let the listener drain after ffmpeg exits before closing it
LISTENER_DRAIN_TIMEOUT = 2.0


@dataclass
class TranscodeOptions:
    """Transcode template: which streams to keep and how to encode them."""

    audio_languages: List[str] = field(default_factory=list)
    audio_options: Optional[Dict[str, Any]] = None
    container_options: Optional[Dict[str, Any]] = None
    copy_all_audio_streams: bool = False
    copy_all_subtitle_streams: bool = False
    copy_all_video_streams: bool = False
    discard_audio: bool = False
    discard_subtitles: bool = False
    discard_video: bool = False
    enable_fast_start: bool = False
    input_args: List[str] = field(default_factory=list)
    output_args: List[str] = field(default_factory=list)
    subtitle_languages: List[str] = field(default_factory=list)
    subtitle_options: Optional[Dict[str, Any]] = None
    video_options: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TranscodeOptions":
        """Build options from a template dict, checking value types."""
        data = data or {}
        values = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            if f.name.endswith(("_languages", "_args")):
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise ConfigurationError(
                        f"'{f.name}' must be a list of strings", field=f.name, value=value
                    )
            elif f.name.endswith("_options"):
                if not isinstance(value, dict):
                    raise ConfigurationError(
                        f"'{f.name}' must be a mapping", field=f.name, value=value
                    )
            elif not isinstance(value, bool):
                raise ConfigurationError(f"'{f.name}' must be a boolean", field=f.name, value=value)
            values[f.name] = value

        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.warning(f"Ignoring unknown transcode options: {', '.join(sorted(unknown))}")

        return cls(**values)


@dataclass
class ResolvedOptions:
    audio: Optional[EncodingOptions] = None
    container: Optional[EncodingOptions] = None
    subtitle: Optional[EncodingOptions] = None
    video: Optional[EncodingOptions] = None


def _resolve_stream(name: str, block, fallback=None, container: bool = False):
    if not block:
        return None
    options = resolve_encoding_options(block, fallback)
    if options.is_container != container:
        expected = "a container format" if container else "a codec"
        raise ConfigurationError(
            f"'{name}' must name {expected}, got {type(options).__name__}", field=name
        )
    return options


class TranscodeVideo:
    """
    Transcodes one file with ffmpeg while listening for its progress.

    Every call runs two tasks: the calling thread drives ffmpeg, a second
    thread consumes the progress stream. Both are finished before
    transcode() returns.
    """

    def __init__(
        self,
        work_dir: str,
        options: TranscodeOptions,
        ffmpeg_path: str = "ffmpeg",
        use_lower_priority: bool = False,
        report_interval: float = 1.0,
        timeout: Optional[float] = None,
    ):
        self.work_dir = work_dir
        self.options = options
        self.ffmpeg_path = ffmpeg_path
        self.use_lower_priority = use_lower_priority
        self.report_interval = report_interval
        self.timeout = timeout
        self.last_report: Optional[ProgressReport] = None

    def resolve_options(self, analysis: Optional[AnalysisResult] = None) -> ResolvedOptions:
        """Decode the template's option blocks and apply derived container flags."""
        opts = self.options
        resolved = ResolvedOptions(
            audio=_resolve_stream("audio_options", opts.audio_options, GenericAudioOptions),
            container=_resolve_stream("container_options", opts.container_options, container=True),
            subtitle=_resolve_stream("subtitle_options", opts.subtitle_options),
            video=_resolve_stream("video_options", opts.video_options),
        )
        configure_container_options(resolved.container, opts.enable_fast_start, analysis)
        return resolved

    def get_output_filename(self, input_filename: str, resolved: ResolvedOptions) -> str:
        basename = os.path.splitext(os.path.basename(input_filename))[0]
        ext = ".mp4" if isinstance(resolved.container, Mp4ContainerOptions) else ".mkv"
        return os.path.join(self.work_dir, f"{basename}-output{ext}")

    def build_runner(
        self, input_filename: str, output_filename: str, resolved: ResolvedOptions, progress_address: str
    ) -> Runner:
        opts = self.options
        return Runner(
            input_filename=input_filename,
            output_filename=output_filename,
            ffmpeg_path=self.ffmpeg_path,
            audio_options=resolved.audio,
            video_options=resolved.video,
            subtitle_options=resolved.subtitle,
            container_options=resolved.container,
            audio_languages=opts.audio_languages,
            subtitle_languages=opts.subtitle_languages,
            map_all_audio_streams=opts.copy_all_audio_streams,
            map_all_subtitle_streams=opts.copy_all_subtitle_streams,
            map_all_video_streams=opts.copy_all_video_streams,
            discard_audio=opts.discard_audio,
            discard_subtitles=opts.discard_subtitles,
            discard_video=opts.discard_video,
            input_args=opts.input_args + ["-progress", progress_address, "-nostats"],
            output_args=opts.output_args,
            use_lower_priority=self.use_lower_priority,
        )

    def _listen(self, listener: ProgressListener, total_frames: int, results: "queue.Queue"):
        try:
            results.put(listener.run(total_frames, self.report_interval))
        except Exception as e:
            logger.error(f"Progress listener failed: {e}")

    def transcode(
        self,
        input_filename: str,
        analysis: Optional[AnalysisResult] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[ProgressReport, Optional[float]], None]] = None,
    ) -> str:
        """
        Transcode a file into the work directory.

        Args:
            input_filename: File to transcode
            analysis: Earlier analysis of the file, used for progress
                percentages and duration-dependent container flags
            cancel_event: Set to stop ffmpeg
            on_progress: Called with report snapshots while ffmpeg runs

        Returns:
            Path of the transcoded file

        Raises:
            ConfigurationError: If the template's option blocks are invalid
            TranscodeError: If ffmpeg fails
            CancelledError: If cancel_event is set
        """
        resolved = self.resolve_options(analysis)
        output_filename = self.get_output_filename(input_filename, resolved)
        try:
            os.makedirs(self.work_dir, exist_ok=True)
        except OSError as e:
            raise ResourceError(f"could not create work dir {self.work_dir}: {e}") from e

        listener = ProgressListener(on_report=on_progress)
        address = listener.begin()
        listen_thread = None
        try:
            runner = self.build_runner(input_filename, output_filename, resolved, address)

            total_frames = analysis.total_frames if analysis is not None else 0
            results = queue.Queue(maxsize=1)
            listen_thread = threading.Thread(
                target=self._listen,
                args=(listener, total_frames, results),
                daemon=True,
                name="reelpipe-progress",
            )
            listen_thread.start()

            logger.info(f"Running ffmpeg: {runner.get_command_string()}")
            runner.run(cancel_event=cancel_event, timeout=self.timeout)
        except TranscodeError as e:
            logger.error(f"Transcode failed for {input_filename}: {e}")
            self._remove_partial(output_filename)
            raise
        except Exception:
            self._remove_partial(output_filename)
            raise
        finally:
            if listen_thread is not None:
                listen_thread.join(timeout=LISTENER_DRAIN_TIMEOUT)
            listener.close()
            if listen_thread is not None:
                listen_thread.join()

        try:
            self.last_report = results.get_nowait()
        except queue.Empty:
            self.last_report = None

        logger.info(
            f"Transcoded {input_filename} -> {output_filename} in {runner.get_elapsed_time():.1f}s"
        )
        return output_filename

    @staticmethod
    def _remove_partial(output_filename: str):
        if os.path.exists(output_filename):
            try:
                os.remove(output_filename)
            except OSError as e:
                logger.warning(f"Could not remove partial output {output_filename}: {e}")
