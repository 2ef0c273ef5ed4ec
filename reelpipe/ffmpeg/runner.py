"""Builds ffmpeg command lines and runs them as cancellable subprocesses."""

import logging
import os
import shlex
import subprocess
import sys
import tempfile
import threading
import time
from typing import List, Optional

from reelpipe.errors import CancelledError, TranscodeError
from reelpipe.ffmpeg.options import EncodingOptions

logger = logging.getLogger(__name__)

# Niceness increment applied to ffmpeg when running at lower priority
LOWER_PRIORITY_NICENESS = 10


def _lower_priority():
    os.nice(LOWER_PRIORITY_NICENESS)


class Runner:
    """
    A single ffmpeg invocation.

    Attributes:
        input_filename: Path to read input from
        output_filename: Path to store output in
        audio_options / video_options / subtitle_options: Per-stream codec options
        container_options: Output format options
        audio_languages / subtitle_languages: ISO 639 codes of streams to keep
        map_all_*_streams: Keep every stream of that type instead of filtering
        discard_*: Drop every stream of that type
        input_args / output_args: Raw args added before ``-i`` / before the output
        use_lower_priority: Run ffmpeg below normal process priority
    """

    def __init__(
        self,
        input_filename: str,
        output_filename: str,
        ffmpeg_path: str = "ffmpeg",
        audio_options: Optional[EncodingOptions] = None,
        video_options: Optional[EncodingOptions] = None,
        subtitle_options: Optional[EncodingOptions] = None,
        container_options: Optional[EncodingOptions] = None,
        audio_languages: Optional[List[str]] = None,
        subtitle_languages: Optional[List[str]] = None,
        map_all_audio_streams: bool = False,
        map_all_subtitle_streams: bool = False,
        map_all_video_streams: bool = False,
        discard_audio: bool = False,
        discard_subtitles: bool = False,
        discard_video: bool = False,
        input_args: Optional[List[str]] = None,
        output_args: Optional[List[str]] = None,
        use_lower_priority: bool = False,
    ):
        self.input_filename = input_filename
        self.output_filename = output_filename
        self.ffmpeg_path = ffmpeg_path
        self.audio_options = audio_options
        self.video_options = video_options
        self.subtitle_options = subtitle_options
        self.container_options = container_options
        self.audio_languages = list(audio_languages or [])
        self.subtitle_languages = list(subtitle_languages or [])
        self.map_all_audio_streams = map_all_audio_streams
        self.map_all_subtitle_streams = map_all_subtitle_streams
        self.map_all_video_streams = map_all_video_streams
        self.discard_audio = discard_audio
        self.discard_subtitles = discard_subtitles
        self.discard_video = discard_video
        self.input_args = list(input_args or [])
        self.output_args = list(output_args or [])
        self.use_lower_priority = use_lower_priority

        self.process: Optional[subprocess.Popen] = None
        self.returncode: Optional[int] = None
        self.output = ""
        self._start_time = None

    def _map_args(self) -> List[str]:
        args = []
        if self.discard_video:
            args.append("-vn")
        elif self.map_all_video_streams:
            args.extend(["-map", "0:v"])
        else:
            args.extend(["-map", "0:v:0"])

        if self.discard_audio:
            args.append("-an")
        elif self.map_all_audio_streams:
            args.extend(["-map", "0:a?"])
        elif self.audio_languages:
            for lang in self.audio_languages:
                args.extend(["-map", f"0:a:m:language:{lang}"])
        else:
            args.extend(["-map", "0:a:0?"])

        if self.discard_subtitles:
            args.append("-sn")
        elif self.map_all_subtitle_streams:
            args.extend(["-map", "0:s?"])
        elif self.subtitle_languages:
            for lang in self.subtitle_languages:
                args.extend(["-map", f"0:s:m:language:{lang}"])

        return args

    def _codec_args(self) -> List[str]:
        args = []
        streams = (
            ("-c:v", self.video_options, self.discard_video),
            ("-c:a", self.audio_options, self.discard_audio),
            ("-c:s", self.subtitle_options, self.discard_subtitles),
        )
        for flag, options, discarded in streams:
            if discarded or options is None:
                continue
            codec_args = options.get_options()
            if codec_args:
                args.append(flag)
                args.extend(codec_args)
        return args

    def build_args(self) -> List[str]:
        """Return the ffmpeg arguments (without the executable)."""
        args = list(self.input_args)
        args.extend(["-i", self.input_filename])
        args.extend(self._map_args())
        args.extend(self._codec_args())
        if self.container_options is not None:
            args.extend(self.container_options.get_options())
        args.extend(self.output_args)
        args.extend(["-y", self.output_filename])
        return [arg for arg in args if arg]

    def get_command(self) -> List[str]:
        return [self.ffmpeg_path] + self.build_args()

    def get_command_string(self) -> str:
        return " ".join(shlex.quote(arg) for arg in self.get_command())

    def _popen_kwargs(self):
        kwargs = {}
        if self.use_lower_priority:
            if sys.platform == "win32":
                kwargs["creationflags"] = subprocess.BELOW_NORMAL_PRIORITY_CLASS
            else:
                kwargs["preexec_fn"] = _lower_priority
        return kwargs

    def run(
        self,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
        poll_interval: float = 0.25,
    ) -> str:
        """
        Run ffmpeg to completion and return its combined output.

        Args:
            cancel_event: When set, ffmpeg is terminated and CancelledError raised
            timeout: Seconds after which ffmpeg is terminated, None for no limit
            poll_interval: Seconds between cancellation checks

        Raises:
            TranscodeError: If ffmpeg can't be started, exits non-zero or times out
            CancelledError: If cancel_event was set while ffmpeg was running
        """
        if self.process is not None:
            raise RuntimeError("Process already started")

        command = self.get_command()
        self._start_time = time.time()

        with tempfile.TemporaryFile() as buf:
            try:
                self.process = subprocess.Popen(
                    command,
                    stdout=buf,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    **self._popen_kwargs(),
                )
            except OSError as e:
                raise TranscodeError(f"could not start ffmpeg: {e}") from e

            cancelled = False
            timed_out = False
            while self.process.poll() is None:
                if cancel_event is not None:
                    if cancel_event.wait(poll_interval):
                        cancelled = True
                else:
                    time.sleep(poll_interval)
                if not cancelled and timeout is not None and self.get_elapsed_time() > timeout:
                    timed_out = True
                if cancelled or timed_out:
                    self.terminate()
                    break

            self.returncode = self.process.wait()
            buf.seek(0)
            self.output = buf.read().decode("utf-8", errors="replace")

        if cancelled:
            raise CancelledError(f"ffmpeg cancelled while writing {self.output_filename}")
        if timed_out:
            raise TranscodeError(
                f"ffmpeg timed out after {timeout:.0f}s", self.returncode, self.output
            )
        if self.returncode != 0:
            raise TranscodeError(
                f"ffmpeg exited with code {self.returncode}", self.returncode, self.output
            )
        return self.output

    def terminate(self):
        """Terminate the ffmpeg process, killing it if it doesn't exit."""
        if self.process and self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()

    def get_elapsed_time(self) -> float:
        if not self._start_time:
            return 0.0
        return time.time() - self._start_time
