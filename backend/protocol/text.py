# backend/protocol/text.py
"""
Plain-text wire formats for pull clients.

CC:Tweaked's http API handles binary bodies poorly, so everything is text.

Frame payload (GET /data.txt):

    #rrggbb,#rrggbb,... (16 colours, slot order 0-9a-f)
    <row 0 glyphs>
    ...
    <row H-1 glyphs>

Audio payload (GET /audio.pcm):

    <newSeq>
    s0,s1,s2,...        signed samples in -128..127

Usage example:

    size, seq = parse_audio_query(request.query_params.get("size"),
                                  request.query_params.get("seq"),
                                  default_size=config.audio.chunk_size)
    body = encode_audio_payload(chunk.new_seq, chunk.samples)
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from constants import AUDIO_SILENCE_U8, PALETTE_SIZE
from video.frames import Palette, RGB


# -------------------------
# Exceptions
# -------------------------

class PullProtocolError(Exception):
    """Base class for malformed pull requests."""


class InvalidChunkSize(PullProtocolError):
    """
    Raised when a requested audio chunk size is not a positive integer.
    """


class InvalidSequenceNumber(PullProtocolError):
    """
    Raised when a client cursor is negative or not an integer.

    Sequence numbers count samples since capture start and are never
    negative.
    """


class InvalidFrameText(ValueError):
    """Raised when frame text does not carry a 16-colour header."""


# -------------------------
# Frames
# -------------------------

def rgb_to_hex(color: RGB) -> str:
    r, g, b = color
    return f"#{r:02x}{g:02x}{b:02x}"


def hex_to_rgb(value: str) -> RGB:
    value = value.strip().lstrip("#")
    if len(value) != 6:
        raise InvalidFrameText(f"bad colour {value!r}")
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


def encode_palette_header(palette: Palette) -> str:
    """16 comma-separated `#rrggbb` colours in slot order."""
    return ",".join(rgb_to_hex(c) for c in palette.colors)


def format_frame(palette: Palette, rows: Sequence[str]) -> str:
    """
    Assemble the full frame text: palette header line, then glyph rows.

    No trailing newline.
    """
    return encode_palette_header(palette) + "\n" + "\n".join(rows)


def parse_frame(text: str) -> tuple[list[RGB], list[str]]:
    """
    Split frame text back into (palette colours, glyph rows).

    Raises:
        InvalidFrameText if the header does not hold exactly 16 colours.
    """
    header, _, body = text.partition("\n")
    colors = [hex_to_rgb(part) for part in header.split(",") if part]
    if len(colors) != PALETTE_SIZE:
        raise InvalidFrameText(f"expected {PALETTE_SIZE} colours, got {len(colors)}")
    rows = body.split("\n") if body else []
    return colors, rows


# -------------------------
# Audio
# -------------------------

def to_signed(samples: np.ndarray) -> np.ndarray:
    """Unsigned 8-bit PCM (silence 128) -> signed -128..127."""
    return samples.astype(np.int16) - AUDIO_SILENCE_U8


def encode_audio_payload(new_seq: int, samples: np.ndarray) -> str:
    """
    Encode an audio chunk as `<newSeq>\\n<comma-separated signed samples>`.
    """
    signed = to_signed(samples)
    return f"{new_seq}\n" + ",".join(map(str, signed.tolist()))


def _parse_int(raw: str | None, *, name: str, error: type[PullProtocolError]) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise error(f"{name} must be an integer, got {raw!r}") from e


def parse_audio_query(
    size: str | None,
    seq: str | None,
    *,
    default_size: int,
) -> tuple[int, int]:
    """
    Validate raw `size` / `seq` query values.

    Missing size -> default_size. Missing seq -> 0 (oldest retained audio).

    Raises:
        InvalidChunkSize, InvalidSequenceNumber
    """
    chunk_size = _parse_int(size, name="size", error=InvalidChunkSize)
    last_seq = _parse_int(seq, name="seq", error=InvalidSequenceNumber)

    if chunk_size is None:
        chunk_size = default_size
    if chunk_size < 1:
        raise InvalidChunkSize(f"size must be >= 1, got {chunk_size}")

    if last_seq is None:
        last_seq = 0
    if last_seq < 0:
        raise InvalidSequenceNumber(f"seq must be >= 0, got {last_seq}")

    return chunk_size, last_seq
