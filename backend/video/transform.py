"""
Image resize / crop and per-screen rendering.

Responsibilities:
- Stretch a captured desktop image to the configured canvas (no aspect
  preservation; distortion is accepted)
- Cut a logical screen's rectangle out of the canvas
- Run palette extraction + glyph mapping and assemble frame text

Everything here is synchronous and pure from the caller's point of view.
The pipeline runs render_screen() in a worker thread.
"""

from __future__ import annotations

import numpy as np
from PIL import Image

from protocol.text import format_frame
from video.frames import LogicalScreen
from video.glyphs import map_glyphs
from video.palette import extract_palette


class TransformFailure(Exception):
    """
    Raised when an image cannot be resized, cropped or rendered.

    Scoped to one screen in one cycle; other screens are unaffected.
    """


def resize_canvas(image: Image.Image, width: int, height: int) -> Image.Image:
    """
    Uniformly stretch `image` to exactly (width, height) RGB.
    """
    if width <= 0 or height <= 0:
        raise TransformFailure(f"invalid canvas size {width}x{height}")
    try:
        rgb = image if image.mode == "RGB" else image.convert("RGB")
        if rgb.size == (width, height):
            return rgb
        return rgb.resize((width, height), Image.Resampling.BILINEAR)
    except (OSError, ValueError) as e:
        raise TransformFailure(f"resize failed: {e}") from e


def crop_screen(canvas: Image.Image, screen: LogicalScreen) -> Image.Image:
    """
    Extract the screen's rectangle from the canvas.

    Raises:
        TransformFailure if the rectangle is not fully inside the canvas.
        Pillow would silently pad out-of-range areas with black.
    """
    left, upper, right, lower = screen.box
    width, height = canvas.size
    if left < 0 or upper < 0 or right > width or lower > height:
        raise TransformFailure(
            f"screen {screen.id!r} box {screen.box} outside canvas {width}x{height}"
        )
    return canvas.crop(screen.box)


def to_pixels(image: Image.Image) -> np.ndarray:
    """(H, W, 3) uint8 array of an image."""
    rgb = image if image.mode == "RGB" else image.convert("RGB")
    return np.asarray(rgb, dtype=np.uint8)


def render_pixels(pixels: np.ndarray) -> str:
    """Palette + glyph grid for a raw pixel region, as frame text."""
    palette = extract_palette(pixels)
    rows = map_glyphs(pixels, palette)
    return format_frame(palette, rows)


def render_screen(canvas: Image.Image, screen: LogicalScreen) -> str:
    """
    Crop one logical screen from the canvas and render its frame text.

    The grid is always screen.width x screen.height glyphs.
    """
    region = crop_screen(canvas, screen)
    try:
        return render_pixels(to_pixels(region))
    except ValueError as e:
        raise TransformFailure(f"screen {screen.id!r}: {e}") from e
