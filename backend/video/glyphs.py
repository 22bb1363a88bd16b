"""
Nearest-palette glyph mapping.

Each pixel becomes the slot key of the palette colour with the smallest
squared Euclidean RGB distance. Ties resolve to the lowest slot key, so the
mapping is deterministic and total.
"""

from __future__ import annotations

import numpy as np

from constants import PALETTE_SLOT_KEYS
from video.frames import Palette
from video.palette import as_rgb_rows

# slot index -> ASCII code of its key
_GLYPH_CODES = np.frombuffer("".join(PALETTE_SLOT_KEYS).encode("ascii"), dtype=np.uint8)

# Pixels per distance block; bounds the (block, 16, 3) temporary
_BLOCK_PIXELS = 65_536


def nearest_slots(pixels: np.ndarray, palette: Palette) -> np.ndarray:
    """
    Return the (H, W) array of nearest palette slot indices.
    """
    height, width = pixels.shape[:2]
    rgb = as_rgb_rows(pixels)
    colors = np.asarray(palette.colors, dtype=np.int64)

    out = np.empty(rgb.shape[0], dtype=np.intp)
    for start in range(0, rgb.shape[0], _BLOCK_PIXELS):
        block = rgb[start:start + _BLOCK_PIXELS]
        diff = block[:, None, :] - colors[None, :, :]
        dist = np.einsum("ijk,ijk->ij", diff, diff)
        # argmin returns the first minimum -> lowest slot wins ties
        out[start:start + block.shape[0]] = dist.argmin(axis=1)

    return out.reshape(height, width)


def map_glyphs(pixels: np.ndarray, palette: Palette) -> list[str]:
    """
    Map a pixel region to row-major glyph rows.

    Returns:
        `height` strings of exactly `width` slot-key characters.
    """
    slots = nearest_slots(pixels, palette)
    codes = _GLYPH_CODES[slots]
    return [row.tobytes().decode("ascii") for row in codes]
