# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest
from PIL import Image

from protocol.text import parse_frame
from video.frames import LogicalScreen
from video.transform import (
    TransformFailure,
    crop_screen,
    render_pixels,
    render_screen,
    resize_canvas,
)


def gradient(width: int, height: int) -> Image.Image:
    xs = np.linspace(0, 255, width, dtype=np.uint8)
    ys = np.linspace(0, 255, height, dtype=np.uint8)
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, :, 0] = xs[None, :]
    pixels[:, :, 1] = ys[:, None]
    pixels[:, :, 2] = 90
    return Image.fromarray(pixels, "RGB")


SCREEN = LogicalScreen(id="a", x=5, y=2, width=10, height=6)


# ---------------------------------------------------------------------
# Grid dimensions
# ---------------------------------------------------------------------

@pytest.mark.parametrize("size", [(1920, 1080), (7, 3), (20, 10), (1, 1)])
def test_grid_matches_screen_for_any_capture_size(size: tuple[int, int]):
    canvas = resize_canvas(gradient(*size), 20, 10)

    colors, rows = parse_frame(render_screen(canvas, SCREEN))

    assert len(colors) == 16
    assert len(rows) == SCREEN.height
    assert all(len(r) == SCREEN.width for r in rows)


def test_resize_stretches_without_preserving_aspect():
    canvas = resize_canvas(gradient(300, 20), 16, 16)

    assert canvas.size == (16, 16)
    assert canvas.mode == "RGB"


def test_resize_converts_rgba():
    rgba = Image.new("RGBA", (4, 4), (10, 20, 30, 128))

    assert resize_canvas(rgba, 4, 4).mode == "RGB"


def test_resize_rejects_zero_canvas():
    with pytest.raises(TransformFailure):
        resize_canvas(gradient(4, 4), 0, 4)


# ---------------------------------------------------------------------
# Crop
# ---------------------------------------------------------------------

def test_crop_takes_screen_rectangle():
    canvas = resize_canvas(gradient(20, 10), 20, 10)

    region = crop_screen(canvas, SCREEN)

    assert region.size == (SCREEN.width, SCREEN.height)
    assert region.getpixel((0, 0)) == canvas.getpixel((SCREEN.x, SCREEN.y))


def test_crop_outside_canvas_fails():
    canvas = resize_canvas(gradient(20, 10), 20, 10)
    outside = LogicalScreen(id="b", x=15, y=0, width=10, height=4)

    with pytest.raises(TransformFailure):
        crop_screen(canvas, outside)


def test_render_pixels_single_colour():
    pixels = np.full((2, 3, 3), 77, dtype=np.uint8)

    colors, rows = parse_frame(render_pixels(pixels))

    assert colors[0] == (77, 77, 77)
    assert rows == ["000", "000"]
