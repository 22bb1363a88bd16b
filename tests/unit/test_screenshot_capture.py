# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import shutil
from pathlib import Path

import pytest

from config import ScreenshotConfig
from video.capture import (
    CaptureFailure,
    CaptureToolMissing,
    ImageSource,
    ScreenshotToolSource,
    build_screenshot_command,
    clear_temp_frames,
    new_capture_path,
)


# ---------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------

def test_command_without_dither(tmp_path: Path):
    config = ScreenshotConfig(tool="shot.exe", scale=2, screen_index=1, threads=8)
    out = tmp_path / "f.png"

    assert build_screenshot_command(config, out) == [
        "shot.exe", "-f", "png", "-o", str(out),
        "-i", "2", "-s", "1", "-t", "8",
    ]


def test_command_with_dither(tmp_path: Path):
    config = ScreenshotConfig(tool="shot.exe", dither="fs")
    cmd = build_screenshot_command(config, tmp_path / "f.png")

    assert cmd[cmd.index("-d") + 1] == "fs"
    assert cmd[-2:] == ["-t", "4"]


# ---------------------------------------------------------------------
# Temp files
# ---------------------------------------------------------------------

def test_capture_paths_are_unique(tmp_path: Path):
    first = new_capture_path(tmp_path)
    second = new_capture_path(tmp_path)

    assert first != second
    assert first.parent == tmp_path
    assert first.name.startswith("ccdvs-") and first.suffix == ".png"


def test_clear_temp_frames_only_removes_capture_files(tmp_path: Path):
    (tmp_path / "ccdvs-aaaa.png").write_bytes(b"x")
    (tmp_path / "ccdvs-bbbb.png").write_bytes(b"x")
    (tmp_path / "holiday.png").write_bytes(b"x")

    assert clear_temp_frames(tmp_path) == 2
    assert [p.name for p in tmp_path.iterdir()] == ["holiday.png"]


# ---------------------------------------------------------------------
# Tool invocation
# ---------------------------------------------------------------------

def test_source_satisfies_protocol():
    assert isinstance(ScreenshotToolSource(ScreenshotConfig()), ImageSource)


def test_missing_tool(tmp_path: Path):
    source = ScreenshotToolSource(
        ScreenshotConfig(tool="definitely-missing-screenshot-tool"),
        directory=tmp_path,
    )

    with pytest.raises(CaptureToolMissing):
        source.ensure_available()
    with pytest.raises(CaptureToolMissing):
        asyncio.run(source.capture())

    assert list(tmp_path.iterdir()) == []


@pytest.mark.skipif(shutil.which("false") is None, reason="needs a `false` binary")
def test_failing_tool_is_a_capture_failure(tmp_path: Path):
    source = ScreenshotToolSource(
        ScreenshotConfig(tool=str(shutil.which("false"))),
        directory=tmp_path,
    )

    with pytest.raises(CaptureFailure) as info:
        asyncio.run(source.capture())

    assert not isinstance(info.value, CaptureToolMissing)
    assert list(tmp_path.iterdir()) == []
