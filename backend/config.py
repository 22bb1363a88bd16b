"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables (and the optional canvas JSON file)
- Provide a typed, immutable config object

Non-responsibilities:
- No capture or transform logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from constants import (
    AUDIO_BUFFER_SECONDS_DEFAULT,
    AUDIO_CHUNK_SIZE_DEFAULT,
    AUDIO_SAMPLE_RATE_HZ,
    DEFAULT_SCREEN_ID,
    FRAME_RATE_DEFAULT,
    HTTP_PORT_DEFAULT,
    SCREENSHOT_TIMEOUT_S_DEFAULT,
)
from video.frames import LogicalScreen


class ConfigError(Exception):
    """Raised when configuration is present but unusable."""


# ------------------------------------------------------------------
# Sections
# ------------------------------------------------------------------

@dataclass(frozen=True)
class ScreenshotConfig:
    """Screenshot tool invocation and capture cadence."""
    tool: str = "ScreenStuff.exe"
    scale: int = 1
    screen_index: int = 0
    threads: int = 4
    dither: str | None = None
    frame_rate: float = FRAME_RATE_DEFAULT
    timeout_s: float = SCREENSHOT_TIMEOUT_S_DEFAULT


@dataclass(frozen=True)
class CanvasConfig:
    """
    Total canvas the desktop is stretched to, and the screens cut from it.
    """
    total_width: int = 164
    total_height: int = 81
    screens: tuple[LogicalScreen, ...] = (
        LogicalScreen(id=DEFAULT_SCREEN_ID, x=0, y=0, width=164, height=81),
    )

    @staticmethod
    def from_mapping(data: Mapping[str, Any]) -> CanvasConfig:
        """
        Build from the JSON layout:

            {"totalWidth": 328, "totalHeight": 81,
             "screens": [{"id": 1, "x": 0, "y": 0, "width": 164, "height": 81}, ...]}

        Raises:
            ConfigError on missing or non-integer fields.
        """
        try:
            screens = tuple(
                LogicalScreen(
                    id=str(s["id"]),
                    x=int(s["x"]),
                    y=int(s["y"]),
                    width=int(s["width"]),
                    height=int(s["height"]),
                )
                for s in data["screens"]
            )
            return CanvasConfig(
                total_width=int(data["totalWidth"]),
                total_height=int(data["totalHeight"]),
                screens=screens,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid canvas config: {e!r}") from e


@dataclass(frozen=True)
class AudioConfig:
    """Desktop audio capture via ffmpeg."""
    enabled: bool = False
    ffmpeg_bin: str = "ffmpeg"
    input_format: str = "dshow"
    device: str = "default"
    volume: float = 1.0
    chunk_size: int = AUDIO_CHUNK_SIZE_DEFAULT
    buffer_seconds: float = AUDIO_BUFFER_SECONDS_DEFAULT

    @property
    def buffer_capacity(self) -> int:
        """Ring capacity in samples."""
        return max(1, int(AUDIO_SAMPLE_RATE_HZ * self.buffer_seconds))


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the stream runtime and the routes.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = HTTP_PORT_DEFAULT

    # ------------------------------------------------------------------
    # Video / Audio
    # ------------------------------------------------------------------

    screenshot: ScreenshotConfig = field(default_factory=ScreenshotConfig)
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> AppConfig:
        """
        Check cross-field invariants; returns self for chaining.

        Raises:
            ConfigError if any screen falls outside the canvas, ids repeat,
            or cadence/buffer values are non-positive.
        """
        canvas = self.canvas
        if canvas.total_width <= 0 or canvas.total_height <= 0:
            raise ConfigError("canvas dimensions must be > 0")
        if not canvas.screens:
            raise ConfigError("at least one screen must be configured")

        seen: set[str] = set()
        for screen in canvas.screens:
            if screen.id in seen:
                raise ConfigError(f"duplicate screen id {screen.id!r}")
            seen.add(screen.id)

            if min(screen.x, screen.y) < 0 or min(screen.width, screen.height) <= 0:
                raise ConfigError(f"screen {screen.id!r} has invalid geometry")
            if (
                screen.x + screen.width > canvas.total_width
                or screen.y + screen.height > canvas.total_height
            ):
                raise ConfigError(
                    f"screen {screen.id!r} exceeds canvas "
                    f"{canvas.total_width}x{canvas.total_height}"
                )

        if self.screenshot.frame_rate <= 0:
            raise ConfigError("frame_rate must be > 0")
        if self.screenshot.timeout_s <= 0:
            raise ConfigError("screenshot timeout must be > 0")
        if self.audio.chunk_size <= 0:
            raise ConfigError("audio chunk_size must be > 0")
        if self.audio.buffer_seconds <= 0:
            raise ConfigError("audio buffer_seconds must be > 0")

        return self

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        CANVAS_CONFIG may point at a JSON file describing the canvas and
        its screens; otherwise a single full-canvas screen is used.

        Raises:
            ConfigError if values are malformed or inconsistent.
        """
        try:
            screenshot = ScreenshotConfig(
                tool=os.environ.get("SCREENSHOT_TOOL", "ScreenStuff.exe"),
                scale=int(os.environ.get("SCREENSHOT_SCALE", "1")),
                screen_index=int(os.environ.get("SCREENSHOT_INDEX", "0")),
                threads=int(os.environ.get("SCREENSHOT_THREADS", "4")),
                dither=os.environ.get("SCREENSHOT_DITHER") or None,
                frame_rate=float(
                    os.environ.get("SCREENSHOT_FRAME_RATE", str(FRAME_RATE_DEFAULT))
                ),
                timeout_s=float(
                    os.environ.get(
                        "SCREENSHOT_TIMEOUT_S", str(SCREENSHOT_TIMEOUT_S_DEFAULT)
                    )
                ),
            )

            audio = AudioConfig(
                enabled=os.environ.get("AUDIO_ENABLED", "0") == "1",
                ffmpeg_bin=os.environ.get("FFMPEG_BIN", "ffmpeg"),
                input_format=os.environ.get("AUDIO_INPUT_FORMAT", "dshow"),
                device=os.environ.get("AUDIO_DEVICE", "default"),
                volume=float(os.environ.get("AUDIO_VOLUME", "1.0")),
                chunk_size=int(
                    os.environ.get("AUDIO_CHUNK_SIZE", str(AUDIO_CHUNK_SIZE_DEFAULT))
                ),
                buffer_seconds=float(
                    os.environ.get(
                        "AUDIO_BUFFER_SECONDS", str(AUDIO_BUFFER_SECONDS_DEFAULT)
                    )
                ),
            )

            port = int(os.environ.get("PORT", str(HTTP_PORT_DEFAULT)))
        except ValueError as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e

        canvas_path = os.environ.get("CANVAS_CONFIG")
        canvas = load_canvas_file(Path(canvas_path)) if canvas_path else CanvasConfig()

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=port,
            screenshot=screenshot,
            canvas=canvas,
            audio=audio,
        ).validate()


def load_canvas_file(path: Path) -> CanvasConfig:
    """Read a canvas JSON file. Raises ConfigError if unreadable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot read canvas config {path}: {e}") from e

    # Accept the legacy {"inGameScreens": {...}} wrapper
    if "inGameScreens" in data:
        data = data["inGameScreens"]

    return CanvasConfig.from_mapping(data)
