"""
Latest rendered frame per logical screen.

Single writer (frame pipeline), many readers (HTTP handlers).

Publication swaps in a new mapping instead of mutating the current one,
so a reader holding the old mapping always sees complete frames.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Mapping


class FrameStateStore:
    """
    Copy-on-write store of screen id -> frame text.
    """

    def __init__(self) -> None:
        self._frames: Mapping[str, str] = MappingProxyType({})
        # Serializes writers only; readers never take it
        self._write_lock = threading.Lock()

    def publish(self, screen_id: str, text: str) -> None:
        """
        Atomically replace the frame for `screen_id`.
        """
        with self._write_lock:
            updated = dict(self._frames)
            updated[screen_id] = text
            self._frames = MappingProxyType(updated)

    def read(self, screen_id: str) -> str:
        """
        Latest frame text, or "" if none was ever published for this id.
        """
        return self._frames.get(screen_id, "")

    def screen_ids(self) -> tuple[str, ...]:
        """Ids that have at least one published frame."""
        return tuple(self._frames)
