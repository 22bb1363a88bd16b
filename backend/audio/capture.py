"""
Desktop audio capture via an ffmpeg child process.

Role in the system:
- Spawns ffmpeg reading the configured input device
- Pumps raw unsigned 8-bit mono PCM from its stdout into the ring buffer
- Drains stderr, dropping progress noise and logging error lines
- Detects process exit and surfaces it as "capture stopped"

Architectural constraints:
- Single producer: only the stdout pump writes the ring
- No knowledge of pull clients or HTTP
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import shutil
from typing import Sequence, TYPE_CHECKING

from audio.ring_buffer import AudioRingBuffer
from observability.logger import log_event
from constants import (
    AUDIO_CHANNELS,
    AUDIO_READ_BYTES,
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_STOP_TIMEOUT_S,
    FFMPEG_PROGRESS_MARKERS,
    LOOPBACK_DEVICE_HINTS,
)

if TYPE_CHECKING:
    from config import AudioConfig


class AudioCaptureError(Exception):
    """Audio capture cannot be started."""


# ---------------------------------------------------------------------
# Device discovery (DirectShow)
# ---------------------------------------------------------------------

_QUOTED = re.compile(r'"([^"]+)"')


def parse_dshow_devices(listing: str) -> list[str]:
    """
    Extract audio device names from `ffmpeg -list_devices true -f dshow`.

    Handles both layouts ffmpeg has used: section headers
    ("DirectShow audio devices") and per-line "(audio)" suffixes.
    Alternative-name lines ("@device_...") are skipped.
    """
    devices: list[str] = []
    in_audio = False

    for line in listing.splitlines():
        if "DirectShow audio devices" in line:
            in_audio = True
            continue
        if "DirectShow video devices" in line:
            in_audio = False
            continue

        match = _QUOTED.search(line)
        if not match or "@device" in match.group(1):
            continue

        if in_audio or line.rstrip().endswith("(audio)"):
            devices.append(match.group(1))

    return devices


def pick_loopback_device(devices: Sequence[str]) -> str | None:
    """
    Prefer a device that captures desktop output, else the first device.
    """
    for name in devices:
        lowered = name.lower()
        if any(hint in lowered for hint in LOOPBACK_DEVICE_HINTS):
            return name
    return devices[0] if devices else None


async def list_dshow_devices(ffmpeg_bin: str) -> list[str]:
    """
    Ask ffmpeg for DirectShow devices. Returns [] when listing fails.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            ffmpeg_bin, "-hide_banner",
            "-list_devices", "true", "-f", "dshow", "-i", "dummy",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=AUDIO_STOP_TIMEOUT_S * 5)
    except (OSError, asyncio.TimeoutError) as e:
        log_event({"event_type": "AUDIO_DEVICE_LIST_FAILED", "error": str(e)})
        return []

    devices = parse_dshow_devices(stderr.decode("utf-8", "replace"))
    log_event({"event_type": "AUDIO_DEVICES", "devices": devices})
    return devices


# ---------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------

def build_ffmpeg_command(config: AudioConfig, device: str) -> list[str]:
    """
    ffmpeg argv producing raw u8 mono PCM on stdout.
    """
    cmd = [config.ffmpeg_bin, "-hide_banner", "-loglevel", "error", "-f", config.input_format]
    if config.input_format == "dshow":
        cmd += ["-audio_buffer_size", "50", "-i", f"audio={device}"]
    else:
        cmd += ["-i", device]
    cmd += [
        "-ac", str(AUDIO_CHANNELS),
        "-ar", str(AUDIO_SAMPLE_RATE_HZ),
        "-acodec", "pcm_u8",
        "-f", "u8",
        "-",
    ]
    return cmd


def is_progress_line(line: str) -> bool:
    return any(marker in line for marker in FFMPEG_PROGRESS_MARKERS)


# ---------------------------------------------------------------------
# Capture process
# ---------------------------------------------------------------------

class AudioCapture:
    """
    Owns the ffmpeg process and its two pump tasks.

    Lifecycle:
    1. start() resolves the device, spawns ffmpeg, starts pumps
    2. _pump_stdout() writes every chunk into the ring
    3. on EOF / exit -> AUDIO_CAPTURE_STOPPED, running = False
    4. stop() terminates (then kills) ffmpeg and awaits the pumps
    """

    def __init__(self, *, config: AudioConfig, ring: AudioRingBuffer) -> None:
        self._config = config
        self._ring = ring
        self._proc: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stopping = False

        self.device: str | None = None
        self.exit_code: int | None = None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    def ensure_available(self) -> None:
        """Fail fast if ffmpeg is not installed."""
        if shutil.which(self._config.ffmpeg_bin) is None:
            raise AudioCaptureError(
                f"ffmpeg not found ({self._config.ffmpeg_bin!r}); "
                "install it or set FFMPEG_BIN"
            )

    async def resolve_device(self) -> str:
        device = self._config.device
        if device != "default" or self._config.input_format != "dshow":
            return device

        picked = pick_loopback_device(await list_dshow_devices(self._config.ffmpeg_bin))
        # Enable "Stereo Mix" in Windows sound settings if nothing shows up
        return picked or device

    async def start(self) -> None:
        if self.running:
            return

        self.device = await self.resolve_device()
        cmd = build_ffmpeg_command(self._config, self.device)

        try:
            self._proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AudioCaptureError(f"cannot start ffmpeg: {e}") from e

        self._stopping = False
        self.exit_code = None
        self._stdout_task = asyncio.create_task(self._pump_stdout(), name="audio-stdout")
        self._stderr_task = asyncio.create_task(self._pump_stderr(), name="audio-stderr")

        log_event({
            "event_type": "AUDIO_CAPTURE_STARTED",
            "device": self.device,
            "input_format": self._config.input_format,
            "pid": self._proc.pid,
        })

    async def stop(self) -> None:
        """
        Terminate ffmpeg and wait for both pumps to finish.
        """
        self._stopping = True
        proc = self._proc

        if proc is not None and proc.returncode is None:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=AUDIO_STOP_TIMEOUT_S)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()

        for task in (self._stdout_task, self._stderr_task):
            if task is None:
                continue
            try:
                await asyncio.wait_for(task, timeout=AUDIO_STOP_TIMEOUT_S)
            except asyncio.TimeoutError:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._stdout_task = None
        self._stderr_task = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _pump_stdout(self) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        stdout = self._proc.stdout

        while True:
            data = await stdout.read(AUDIO_READ_BYTES)
            if not data:
                break
            self._ring.write(data)

        self.exit_code = await self._proc.wait()
        log_event({
            "event_type": "AUDIO_CAPTURE_STOPPED",
            "exit_code": self.exit_code,
            "requested": self._stopping,
            "ring": self._ring.snapshot(),
        })

    async def _pump_stderr(self) -> None:
        assert self._proc is not None and self._proc.stderr is not None
        stderr = self._proc.stderr

        while True:
            raw = await stderr.readline()
            if not raw:
                break
            line = raw.decode("utf-8", "replace").strip()
            if not line or is_progress_line(line):
                continue
            if "error" in line.lower():
                log_event({"event_type": "AUDIO_CAPTURE_DIAGNOSTIC", "message": line})
