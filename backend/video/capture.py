"""
Desktop image capture.

Role in the system:
- Runs the external screenshot tool once per pipeline cycle
- Waits for it with a hard timeout (the process is killed past it)
- Decodes the PNG it wrote and removes the transient file

The pipeline only depends on the ImageSource protocol; tests plug in
in-memory sources.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import shutil
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable, TYPE_CHECKING

from PIL import Image

from observability.logger import log_event
from constants import CAPTURE_FILE_PREFIX, CAPTURE_FILE_SUFFIX

if TYPE_CHECKING:
    from config import ScreenshotConfig


# -------------------------
# Exceptions
# -------------------------

class CaptureFailure(Exception):
    """
    The desktop image could not be captured this cycle.

    Never fatal: the cycle is aborted and the next tick retries.
    """


class CaptureToolMissing(CaptureFailure):
    """
    The screenshot executable does not exist.

    Raised by ensure_available() at startup, where it is fatal.
    """


# -------------------------
# Contract
# -------------------------

@runtime_checkable
class ImageSource(Protocol):
    """Anything that can produce one full-resolution desktop image."""

    async def capture(self) -> Image.Image:
        """Return one RGB image or raise CaptureFailure."""
        ...


# -------------------------
# Temp file helpers
# -------------------------

def capture_dir() -> Path:
    return Path(tempfile.gettempdir())


def new_capture_path(directory: Path | None = None) -> Path:
    directory = directory or capture_dir()
    return directory / f"{CAPTURE_FILE_PREFIX}{secrets.token_hex(8)}{CAPTURE_FILE_SUFFIX}"


def clear_temp_frames(directory: Path | None = None) -> int:
    """
    Delete leftover capture files. Returns the number removed.

    Called at startup and during shutdown.
    """
    directory = directory or capture_dir()
    removed = 0
    for path in directory.glob(f"{CAPTURE_FILE_PREFIX}*{CAPTURE_FILE_SUFFIX}"):
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            log_event({
                "event_type": "CAPTURE_TEMP_CLEAR_ERROR",
                "path": str(path),
                "error": str(e),
            })

    log_event({
        "event_type": "CAPTURE_TEMP_CLEARED",
        "directory": str(directory),
        "removed": removed,
    })
    return removed


def _load_png(path: Path) -> Image.Image:
    with Image.open(path) as img:
        img.load()
        return img.convert("RGB")


# -------------------------
# Screenshot tool source
# -------------------------

def build_screenshot_command(config: ScreenshotConfig, output: Path) -> list[str]:
    """
    Argument vector for the screenshot tool.

    <tool> -f png -o <file> -i <scale> -s <screenIndex> [-d <dither>] -t <threads>
    """
    cmd = [
        config.tool,
        "-f", "png",
        "-o", str(output),
        "-i", str(config.scale),
        "-s", str(config.screen_index),
    ]
    if config.dither:
        cmd += ["-d", config.dither]
    cmd += ["-t", str(config.threads)]
    return cmd


class ScreenshotToolSource:
    """
    ImageSource backed by an external screenshot executable.
    """

    def __init__(
        self,
        config: ScreenshotConfig,
        *,
        directory: Path | None = None,
    ) -> None:
        self._config = config
        self._directory = directory

    def ensure_available(self) -> None:
        """
        Fail fast if the tool cannot be found on PATH or on disk.
        """
        tool = self._config.tool
        if shutil.which(tool) is None and not os.path.isfile(tool):
            raise CaptureToolMissing(f"screenshot tool not found: {tool!r}")

    async def capture(self) -> Image.Image:
        path = new_capture_path(self._directory)
        cmd = build_screenshot_command(self._config, path)
        proc: asyncio.subprocess.Process | None = None

        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as e:
                raise CaptureToolMissing(f"screenshot tool not found: {cmd[0]!r}") from e
            except OSError as e:
                raise CaptureFailure(f"cannot start screenshot tool: {e}") from e

            try:
                _, stderr = await asyncio.wait_for(
                    proc.communicate(), timeout=self._config.timeout_s
                )
            except asyncio.TimeoutError as e:
                raise CaptureFailure(
                    f"screenshot tool timed out after {self._config.timeout_s}s"
                ) from e

            if proc.returncode != 0:
                detail = (stderr or b"").decode("utf-8", "replace").strip()
                raise CaptureFailure(
                    f"screenshot tool exited with {proc.returncode}: {detail[:200]}"
                )

            try:
                return await asyncio.to_thread(_load_png, path)
            except (OSError, Image.DecompressionBombError) as e:
                raise CaptureFailure(f"cannot decode capture {path.name}: {e}") from e

        finally:
            if proc is not None and proc.returncode is None:
                proc.kill()
                await proc.wait()
            path.unlink(missing_ok=True)
