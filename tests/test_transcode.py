from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from adreel.media.errors import ThumbnailError, TranscodeError
from adreel.media.probe import probe_duration
from adreel.media.transcode import (
    FrameBounds,
    build_thumbnail_command,
    build_transcode_command,
    render_thumbnail,
    transcode,
)
from tests.conftest import requires_ffmpeg


def test_default_bounds_cap_height_and_keep_aspect():
    assert FrameBounds(max_height=720).video_filter() == "scale=-2:'min(720,ih)'"


def test_letterbox_bounds_pad_to_exact_frame():
    vf = FrameBounds(max_height=1920, max_width=1080, letterbox=True).video_filter()
    assert vf.startswith("scale=1080:1920:force_original_aspect_ratio=decrease")
    assert "pad=1080:1920" in vf


def test_transcode_command_trims_and_encodes_h264_aac():
    command = build_transcode_command(Path("in.mov"), Path("out.mp4"), max_duration_s=10, bounds=FrameBounds(max_height=720))
    assert command[0] == "ffmpeg"
    assert command[command.index("-t") + 1] == "10"
    assert command[command.index("-c:v") + 1] == "libx264"
    assert command[command.index("-preset") + 1] == "veryfast"
    assert command[command.index("-crf") + 1] == "23"
    assert command[command.index("-c:a") + 1] == "aac"
    assert command[command.index("-movflags") + 1] == "+faststart"
    assert command[-1] == "out.mp4"


def test_thumbnail_command_seeks_and_scales():
    command = build_thumbnail_command(Path("v.mp4"), Path("t.jpg"), offset_s=1.0, width=640)
    assert command[command.index("-ss") + 1] == "1.000"
    assert command[command.index("-frames:v") + 1] == "1"
    assert command[command.index("-vf") + 1] == "scale=640:-2"


def test_transcode_raises_when_ffmpeg_missing(monkeypatch, tmp_path):
    def _missing(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(subprocess, "run", _missing)
    with pytest.raises(TranscodeError) as excinfo:
        transcode(tmp_path / "in.mp4", tmp_path / "out.mp4", max_duration_s=10, bounds=FrameBounds(max_height=720))
    assert excinfo.value.code == "TRANSCODE_FAILED"


def test_transcode_failure_keeps_stderr(monkeypatch, tmp_path):
    def _fail(command, **kwargs):
        raise subprocess.CalledProcessError(1, command, stderr="moov atom not found")

    monkeypatch.setattr(subprocess, "run", _fail)
    with pytest.raises(TranscodeError) as excinfo:
        transcode(tmp_path / "in.mp4", tmp_path / "out.mp4", max_duration_s=10, bounds=FrameBounds(max_height=720))
    assert excinfo.value.stderr == "moov atom not found"


def test_thumbnail_failure_raises_thumbnail_error(monkeypatch, tmp_path):
    def _fail(command, **kwargs):
        raise subprocess.CalledProcessError(1, command, stderr="seek past end")

    monkeypatch.setattr(subprocess, "run", _fail)
    with pytest.raises(ThumbnailError) as excinfo:
        render_thumbnail(tmp_path / "v.mp4", tmp_path / "t.jpg")
    assert excinfo.value.code == "THUMBNAIL_FAILED"


@requires_ffmpeg
def test_transcode_trims_long_clip_and_renders_thumbnail(generated_video_file, tmp_path):
    output = transcode(
        generated_video_file,
        tmp_path / "out.mp4",
        max_duration_s=10,
        bounds=FrameBounds(max_height=120),
    )
    assert probe_duration(output) == 10

    width, height = render_thumbnail(output, tmp_path / "thumb.jpg", offset_s=1.0, width=160)
    assert width == 160
    assert height == 120
    assert (tmp_path / "thumb.jpg").stat().st_size > 0
