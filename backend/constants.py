"""
CONSTANTS
---------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Palette / Glyphs
# =============================================================================

# One slot per CC colour; each key is also the blit() character for that slot
PALETTE_SLOT_KEYS: Final[Tuple[str, ...]] = (
    "0", "1", "2", "3", "4", "5", "6", "7",
    "8", "9", "a", "b", "c", "d", "e", "f",
)
PALETTE_SIZE: Final[int] = len(PALETTE_SLOT_KEYS)

# Higher = more grouping of similar colours before ranking buckets
PALETTE_QUANTIZE_FACTOR: Final[int] = 24

PALETTE_FALLBACK_RGB: Final[Tuple[int, int, int]] = (0, 0, 0)

# =============================================================================
# Frame Pipeline
# =============================================================================

FRAME_RATE_DEFAULT: Final[float] = 10.0
SCREENSHOT_TIMEOUT_S_DEFAULT: Final[float] = 5.0

DEFAULT_SCREEN_ID: Final[str] = "1"

# Transient capture artifacts: <tmpdir>/ccdvs-<token>.png
CAPTURE_FILE_PREFIX: Final[str] = "ccdvs-"
CAPTURE_FILE_SUFFIX: Final[str] = ".png"

# =============================================================================
# Audio Format (unsigned 8-bit PCM mono @ 48kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 48_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_BIT_DEPTH: Final[int] = 8
AUDIO_SILENCE_U8: Final[int] = 128

# Ring capacity default: one second of audio
AUDIO_BUFFER_SECONDS_DEFAULT: Final[float] = 1.0

# Default pull size; 16 * 1024 samples per speaker.playAudio call
AUDIO_CHUNK_SIZE_DEFAULT: Final[int] = 16_384

AUDIO_READ_BYTES: Final[int] = 4096
AUDIO_STOP_TIMEOUT_S: Final[float] = 2.0

# ffmpeg stderr lines containing these are progress noise
FFMPEG_PROGRESS_MARKERS: Final[Tuple[str, ...]] = ("size=", "time=")

# Device names that usually mean "what the desktop is playing"
LOOPBACK_DEVICE_HINTS: Final[Tuple[str, ...]] = (
    "stereo mix",
    "loopback",
    "what u hear",
    "wave out",
    "cable output",
)

# =============================================================================
# HTTP
# =============================================================================

HTTP_PORT_DEFAULT: Final[int] = 8000
VIDEO_DIRECTION_DEFAULT: Final[str] = "right"
AUDIO_DIRECTION_DEFAULT: Final[str] = "left"
