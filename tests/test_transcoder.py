"""Tests for transcode templates and the transcode driver."""

import os
import socket
import threading

import pytest

from reelpipe import transcoder as transcoder_module
from reelpipe.analyzer import AnalysisResult
from reelpipe.errors import CancelledError, ConfigurationError, ResourceError, TranscodeError
from reelpipe.ffmpeg.options import (
    CopyOptions,
    GenericAudioOptions,
    Libx265Options,
    MatroskaContainerOptions,
    Mp4ContainerOptions,
)
from reelpipe.transcoder import TranscodeOptions, TranscodeVideo

TEMPLATE = {
    "video_options": {"codec": "libx265", "crf": 22, "use_crf": True},
    "audio_options": {"codec": "aac", "bitrate": "160k"},
    "subtitle_options": {"codec": "copy"},
    "container_options": {"format": "matroska"},
    "audio_languages": ["jpn"],
    "enable_fast_start": True,
}


def test_options_from_dict():
    options = TranscodeOptions.from_dict(TEMPLATE)
    assert options.audio_languages == ["jpn"]
    assert options.enable_fast_start
    assert options.video_options == TEMPLATE["video_options"]
    assert TranscodeOptions.from_dict(None) == TranscodeOptions()


@pytest.mark.parametrize(
    "key, value",
    [
        ("audio_languages", "jpn"),
        ("input_args", ["-ss", 5]),
        ("video_options", "libx265"),
        ("discard_video", "yes"),
    ],
)
def test_options_from_dict_rejects_bad_types(key, value):
    with pytest.raises(ConfigurationError) as excinfo:
        TranscodeOptions.from_dict({key: value})
    assert excinfo.value.field == key


def test_options_ignore_unknown_keys():
    assert TranscodeOptions.from_dict({"frobnicate": True}) == TranscodeOptions()


def test_resolve_options():
    transcoder = TranscodeVideo("/work", TranscodeOptions.from_dict(TEMPLATE))
    resolved = transcoder.resolve_options(AnalysisResult(duration=45 * 60))

    assert isinstance(resolved.video, Libx265Options)
    assert isinstance(resolved.audio, GenericAudioOptions)
    assert isinstance(resolved.subtitle, CopyOptions)
    assert isinstance(resolved.container, MatroskaContainerOptions)
    assert resolved.container.reserve_index_space == 50


def test_resolve_rejects_codec_as_container():
    options = TranscodeOptions(container_options={"codec": "copy"})
    with pytest.raises(ConfigurationError) as excinfo:
        TranscodeVideo("/work", options).resolve_options()
    assert excinfo.value.field == "container_options"


def test_output_filename_follows_container():
    transcoder = TranscodeVideo("/work", TranscodeOptions(container_options={"format": "mp4"}))
    resolved = transcoder.resolve_options()
    assert isinstance(resolved.container, Mp4ContainerOptions)
    assert transcoder.get_output_filename("/in/show-001.mkv", resolved) == os.path.join(
        "/work", "show-001-output.mp4"
    )


def test_runner_reports_progress_to_listener():
    transcoder = TranscodeVideo("/work", TranscodeOptions.from_dict(TEMPLATE))
    resolved = transcoder.resolve_options()
    runner = transcoder.build_runner("in.mkv", "/work/in-output.mkv", resolved, "tcp://127.0.0.1:9")
    args = runner.build_args()
    assert args[:3] == ["-progress", "tcp://127.0.0.1:9", "-nostats"]
    assert "0:a:m:language:jpn" in args


class FakeRunner:
    """Stands in for Runner: writes the output file and a progress session."""

    def __init__(self, output_filename, address, error=None):
        self.output_filename = output_filename
        self.address = address
        self.error = error

    def get_command_string(self):
        return "ffmpeg ..."

    def get_elapsed_time(self):
        return 1.0

    def run(self, cancel_event=None, timeout=None):
        with open(self.output_filename, "w") as f:
            f.write("partial")
        host, port = self.address[len("tcp://"):].rsplit(":", 1)
        with socket.create_connection((host, int(port)), timeout=5) as conn:
            conn.sendall(b"frame=120\nprogress=continue\nframe=240\nprogress=end\n")
        if self.error is not None:
            raise self.error
        return ""


def _patch_runner(monkeypatch, error=None):
    def build_runner(self, input_filename, output_filename, resolved, address):
        return FakeRunner(output_filename, address, error)

    monkeypatch.setattr(transcoder_module.TranscodeVideo, "build_runner", build_runner)


def test_transcode_collects_progress(monkeypatch, tmp_path):
    _patch_runner(monkeypatch)
    reports = []
    transcoder = TranscodeVideo(str(tmp_path), TranscodeOptions.from_dict(TEMPLATE), report_interval=0)

    output = transcoder.transcode(
        "/in/show.mkv",
        AnalysisResult(total_frames=240),
        on_progress=lambda report, percent: reports.append(percent),
    )

    assert output == os.path.join(str(tmp_path), "show-output.mkv")
    assert os.path.isfile(output)
    assert transcoder.last_report.frame == 240
    assert reports[-1] == 100.0


@pytest.mark.parametrize(
    "error", [TranscodeError("ffmpeg exited with code 1", 1, "boom"), CancelledError("cancelled")]
)
def test_transcode_failure_removes_partial_output(monkeypatch, tmp_path, error):
    _patch_runner(monkeypatch, error=error)
    transcoder = TranscodeVideo(str(tmp_path), TranscodeOptions.from_dict(TEMPLATE))

    with pytest.raises(type(error)):
        transcoder.transcode("/in/show.mkv", cancel_event=threading.Event())

    assert not os.path.exists(os.path.join(str(tmp_path), "show-output.mkv"))


def test_transcode_work_dir_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    transcoder = TranscodeVideo(str(blocker / "work"), TranscodeOptions.from_dict(TEMPLATE))

    with pytest.raises(ResourceError):
        transcoder.transcode("/in/show.mkv")


def test_listener_closed_when_runner_cannot_be_built(monkeypatch, tmp_path):
    listeners = []

    class RecordingListener(transcoder_module.ProgressListener):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            listeners.append(self)

    def build_runner(self, input_filename, output_filename, resolved, address):
        raise RuntimeError("bad runner")

    monkeypatch.setattr(transcoder_module, "ProgressListener", RecordingListener)
    monkeypatch.setattr(transcoder_module.TranscodeVideo, "build_runner", build_runner)

    with pytest.raises(RuntimeError):
        TranscodeVideo(str(tmp_path), TranscodeOptions.from_dict(TEMPLATE)).transcode("/in/show.mkv")

    assert listeners[0]._sock is None
    assert listeners[0]._closed
