"""Tests for mkvmerge splitting."""

import os
import subprocess

import pytest

from reelpipe import splitter as splitter_module
from reelpipe.errors import SplitError
from reelpipe.splitter import NullSink, Splitter, format_split_output_name


class RecordingSink:
    def __init__(self):
        self.data = []
        self.flushed = False

    def write(self, data):
        self.data.append(data)
        return len(data)

    def flush(self):
        self.flushed = True


def _fake_mkvmerge(monkeypatch, parts=3, returncode=0, output="Progress: 100%"):
    calls = []

    def run(cmd, capture_output, text, **kwargs):
        calls.append(cmd)
        output_filename = cmd[cmd.index("-o") + 1]
        for index in range(parts):
            with open(format_split_output_name(output_filename, index), "w") as f:
                f.write("part")
        return subprocess.CompletedProcess(cmd, returncode, stdout=output, stderr="")

    monkeypatch.setattr(splitter_module.subprocess, "run", run)
    return calls


def test_format_split_output_name():
    assert format_split_output_name("/tmp/episode.mkv", 0) == "/tmp/episode-001.mkv"
    assert format_split_output_name("/tmp/episode.mkv", 11) == "/tmp/episode-012.mkv"


def test_null_sink():
    sink = NullSink()
    assert sink.write("chatter") == len("chatter")
    sink.flush()


def test_split_by_chapters(monkeypatch, tmp_path):
    calls = _fake_mkvmerge(monkeypatch, parts=3)
    sink = RecordingSink()
    splitter = Splitter(str(tmp_path), mkvmerge_path="/opt/mkvmerge", sink=sink)

    parts = splitter.split("disc.mkv")

    assert [os.path.basename(p) for p in parts] == [
        "episode-001.mkv",
        "episode-002.mkv",
        "episode-003.mkv",
    ]
    assert all(p.startswith(str(tmp_path)) for p in parts)
    assert calls[0][0] == "/opt/mkvmerge"
    assert calls[0][calls[0].index("--split") + 1] == "chapters:all"
    assert calls[0][-1] == "disc.mkv"
    assert sink.data == ["Progress: 100%"]
    assert sink.flushed


def test_split_selected_chapters(monkeypatch, tmp_path):
    calls = _fake_mkvmerge(monkeypatch, parts=2)
    Splitter(str(tmp_path), chapters=[3, 6]).split("disc.mkv")
    assert "chapters:3,6" in calls[0]


def test_split_with_detector(monkeypatch, tmp_path):
    calls = _fake_mkvmerge(monkeypatch, parts=2)
    splitter = Splitter(str(tmp_path), detector=lambda path: [1320.5, 0, 660.0])
    splitter.split("disc.mkv")
    assert "timestamps:660.000s,1320.500s" in calls[0]


def test_no_boundaries_processes_input_whole(monkeypatch, tmp_path):
    calls = _fake_mkvmerge(monkeypatch)
    splitter = Splitter(str(tmp_path), detector=lambda path: [])
    assert splitter.split("movie.mkv") == ["movie.mkv"]
    assert Splitter(str(tmp_path), chapters=[]).split("movie.mkv") == ["movie.mkv"]
    assert calls == []


def test_warnings_exit_code_is_success(monkeypatch, tmp_path):
    _fake_mkvmerge(monkeypatch, parts=2, returncode=1)
    assert len(Splitter(str(tmp_path)).split("disc.mkv")) == 2


def test_error_exit_raises_with_output(monkeypatch, tmp_path):
    _fake_mkvmerge(monkeypatch, parts=0, returncode=2, output="Error: not a Matroska file")
    sink = RecordingSink()
    with pytest.raises(SplitError) as excinfo:
        Splitter(str(tmp_path), sink=sink).split("disc.avi")
    assert excinfo.value.returncode == 2
    assert "not a Matroska file" in str(excinfo.value)
    assert sink.data == []


def test_no_parts_raises(monkeypatch, tmp_path):
    _fake_mkvmerge(monkeypatch, parts=0)
    with pytest.raises(SplitError, match="no parts"):
        Splitter(str(tmp_path)).split("disc.mkv")


def test_each_split_gets_its_own_directory(monkeypatch, tmp_path):
    _fake_mkvmerge(monkeypatch, parts=1)
    splitter = Splitter(str(tmp_path))
    first = splitter.split("a.mkv")
    second = splitter.split("b.mkv")
    assert os.path.dirname(first[0]) != os.path.dirname(second[0])
