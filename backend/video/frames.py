"""
Video frame primitives.

Pure data containers only.
No behavior, no capture, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class LogicalScreen:
    """
    One configured output rectangle, mapped to one polling terminal.

    x, y, width, height:
        Sub-rectangle of the resized canvas, in canvas pixels.
        One canvas pixel becomes one glyph in the rendered grid.

    Static configuration; never mutated during a run.
    """
    id: str
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Pillow crop box (left, upper, right, lower)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(frozen=True)
class Palette:
    """
    Reduced 16-colour palette for one screen in one cycle.

    colors:
        Representative colour per slot, in slot-key order.
        Always exactly PALETTE_SIZE entries.

    used:
        Number of leading slots backed by real pixel buckets.
        Slots from `used` onward hold the fallback colour.
    """
    colors: tuple[RGB, ...]
    used: int
