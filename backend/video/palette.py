"""
Per-frame 16-colour palette extraction.

Algorithm:
- Quantize every pixel into coarse buckets (round each channel to the
  nearest multiple of PALETTE_QUANTIZE_FACTOR, clamped to [0, 255])
- Rank buckets by pixel count, ties broken by first appearance
  (row-major scan order)
- Represent each of the top 16 buckets by the true mean colour of its
  member pixels, not the bucket centre
- Pad unused slots with PALETTE_FALLBACK_RGB

Pure functions only. Palettes are never carried across frames or screens.
"""

from __future__ import annotations

import numpy as np

from constants import (
    PALETTE_FALLBACK_RGB,
    PALETTE_QUANTIZE_FACTOR,
    PALETTE_SIZE,
)
from video.frames import Palette, RGB


def as_rgb_rows(pixels: np.ndarray) -> np.ndarray:
    """
    Flatten an (H, W, C>=3) pixel array to (H*W, 3) int64 RGB rows.

    Alpha or any extra channels are ignored.

    Raises:
        ValueError if the array is not an image-shaped array.
    """
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise ValueError(f"expected (H, W, 3) pixel array, got shape {pixels.shape}")
    return pixels[:, :, :3].reshape(-1, 3).astype(np.int64)


def _round_half_up(values: np.ndarray) -> np.ndarray:
    # np.round is banker's rounding; buckets must round .5 upward
    return np.floor(values + 0.5)


def quantize(rgb: np.ndarray, factor: int = PALETTE_QUANTIZE_FACTOR) -> np.ndarray:
    """Snap each channel to the nearest multiple of `factor`, clamped to [0, 255]."""
    if factor <= 0:
        raise ValueError("factor must be > 0")
    snapped = _round_half_up(rgb / factor) * factor
    return np.clip(snapped, 0, 255).astype(np.int64)


def extract_palette(
    pixels: np.ndarray,
    *,
    factor: int = PALETTE_QUANTIZE_FACTOR,
) -> Palette:
    """
    Compute the representative 16-colour palette of a pixel region.

    Args:
        pixels: (H, W, 3) array of 8-bit RGB values.
        factor: quantization step; higher = more grouping.

    Returns:
        Palette with exactly PALETTE_SIZE colours. `used` counts the
        slots backed by real buckets; the rest are the fallback colour.
    """
    rgb = as_rgb_rows(pixels)
    if rgb.shape[0] == 0:
        return Palette(colors=(PALETTE_FALLBACK_RGB,) * PALETTE_SIZE, used=0)

    q = quantize(rgb, factor)
    keys = (q[:, 0] << 16) | (q[:, 1] << 8) | q[:, 2]

    _, first_seen, inverse, counts = np.unique(
        keys,
        return_index=True,
        return_inverse=True,
        return_counts=True,
    )
    inverse = inverse.reshape(-1)

    # Primary: count descending. Secondary: first appearance ascending.
    ranked = np.lexsort((first_seen, -counts))[:PALETTE_SIZE]

    sums = np.stack(
        [
            np.bincount(inverse, weights=rgb[:, ch], minlength=counts.shape[0])
            for ch in range(3)
        ],
        axis=1,
    )
    means = _round_half_up(sums[ranked] / counts[ranked, None]).astype(np.int64)

    colors: list[RGB] = [
        (int(r), int(g), int(b)) for r, g, b in means
    ]
    used = len(colors)
    colors.extend([PALETTE_FALLBACK_RGB] * (PALETTE_SIZE - used))

    return Palette(colors=tuple(colors), used=used)
