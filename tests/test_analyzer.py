"""Tests for ffprobe analysis."""

import json
import subprocess

import pytest

from reelpipe import analyzer as analyzer_module
from reelpipe.analyzer import AnalysisResult, Analyzer, parse_frame_rate
from reelpipe.errors import AnalysisError


def test_parse_frame_rate():
    assert parse_frame_rate("24/1") == 24.0
    assert parse_frame_rate("25") == 25.0
    assert parse_frame_rate("24000/1001") == pytest.approx(23.976, rel=1e-3)


@pytest.mark.parametrize("rate", ["0/0", "abc", "1/2/3", ""])
def test_parse_frame_rate_invalid(rate):
    with pytest.raises(ValueError):
        parse_frame_rate(rate)


def _fake_run(monkeypatch, payload, returncode=0, stderr=""):
    calls = []

    def run(cmd, capture_output, text):
        calls.append(cmd)
        stdout = payload if isinstance(payload, str) else json.dumps(payload)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr(analyzer_module.subprocess, "run", run)
    return calls


def test_analyze_counts_streams_and_frames(monkeypatch):
    calls = _fake_run(
        monkeypatch,
        {
            "streams": [
                {"codec_type": "video", "nb_read_frames": "2400", "avg_frame_rate": "24/1"},
                {"codec_type": "audio"},
                {"codec_type": "audio"},
                {"codec_type": "subtitle"},
                {"codec_type": "attachment"},
            ],
            "format": {"duration": "100.5"},
        },
    )

    result = Analyzer("/opt/ffprobe").analyze("show.mkv")

    assert result == AnalysisResult(
        duration=100.0,
        num_audio_streams=2,
        num_subtitle_streams=1,
        num_video_streams=1,
        total_frames=2400,
    )
    assert calls[0][0] == "/opt/ffprobe"
    assert "-count_frames" in calls[0]
    assert calls[0][-1] == "show.mkv"


def test_analyze_falls_back_to_format_duration(monkeypatch):
    _fake_run(
        monkeypatch,
        {
            "streams": [{"codec_type": "video", "avg_frame_rate": "0/0"}],
            "format": {"duration": "2700.0"},
        },
    )
    result = Analyzer(count_frames=False).analyze("movie.mkv")
    assert result.duration == 2700.0
    assert result.total_frames == 0


def test_analyze_without_streams(monkeypatch):
    _fake_run(monkeypatch, {})
    result = Analyzer().analyze("empty.mkv")
    assert result == AnalysisResult()


def test_analyze_error_exit(monkeypatch):
    _fake_run(monkeypatch, "", returncode=1, stderr="No such file or directory")
    with pytest.raises(AnalysisError) as excinfo:
        Analyzer().analyze("missing.mkv")
    assert excinfo.value.returncode == 1
    assert "No such file" in excinfo.value.output


def test_analyze_bad_json(monkeypatch):
    _fake_run(monkeypatch, "not json")
    with pytest.raises(AnalysisError):
        Analyzer().analyze("show.mkv")
