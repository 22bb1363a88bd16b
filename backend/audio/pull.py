"""
Stateless audio pull protocol.

A client sends (chunk_size, last_seq) and gets back the next unseen
samples plus the cursor to send next time. The server keeps no per-client
state; the ring's write_seq is the only shared cursor.

Rules:
- last_seq >= write_seq          -> NOTHING_NEW (distinct from an empty chunk)
- last_seq <  write_seq - C      -> overrun: resync to write_seq - C + chunk
                                    ("oldest retained plus one chunk"); a
                                    chunk as large as C resyncs to the oldest
- otherwise                      -> min(write_seq - last_seq, chunk) samples
                                    starting at last_seq

Clients that poll too slowly lose their oldest samples. That loss is the
defined failure mode; they never receive a duplicate or a torn range.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Union

import numpy as np

from audio.ring_buffer import AudioRingBuffer
from protocol.text import InvalidChunkSize, InvalidSequenceNumber


class NothingNew:
    """Sentinel type: the client is already caught up."""

    _instance: "NothingNew | None" = None

    def __new__(cls) -> "NothingNew":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOTHING_NEW"

    def __bool__(self) -> bool:
        return False


NOTHING_NEW: Final[NothingNew] = NothingNew()


@dataclass(frozen=True)
class AudioChunk:
    """
    One pull response.

    new_seq:
        Cursor the client must send on its next request.

    samples:
        Unsigned 8-bit samples [new_seq - len(samples), new_seq).

    resynced / dropped:
        Set when the client had fallen out of the retained window;
        `dropped` counts samples it will never receive.
    """
    new_seq: int
    samples: np.ndarray
    resynced: bool = False
    dropped: int = 0

    @property
    def start_seq(self) -> int:
        return self.new_seq - int(self.samples.shape[0])


PullResult = Union[AudioChunk, NothingNew]


def resync_cursor(*, write_seq: int, capacity: int, chunk_size: int) -> int:
    """
    Where an overrun client restarts.

    Oldest retained + one chunk, giving one chunk of headroom against the
    producer. The first chunk after a resync may be short. When the chunk
    spans the whole ring there is no headroom to give, so the client
    restarts at the oldest retained sample.
    """
    oldest = max(0, write_seq - capacity)
    if chunk_size >= capacity:
        return oldest
    return oldest + chunk_size


def pull_chunk(ring: AudioRingBuffer, chunk_size: int, last_seq: int) -> PullResult:
    """
    Serve the next samples after `last_seq`, at most `chunk_size` of them.

    chunk_size above the ring capacity is clamped to the capacity.

    Raises:
        InvalidChunkSize if chunk_size < 1
        InvalidSequenceNumber if last_seq < 0
    """
    if chunk_size < 1:
        raise InvalidChunkSize(f"chunk_size must be >= 1, got {chunk_size}")
    if last_seq < 0:
        raise InvalidSequenceNumber(f"last_seq must be >= 0, got {last_seq}")

    chunk = min(chunk_size, ring.capacity)

    # Serialization point: write_seq and the copied range come from the
    # same locked view of the ring.
    with ring.lock:
        write_seq = ring.write_seq

        if last_seq >= write_seq:
            return NOTHING_NEW

        cursor = last_seq
        resynced = False
        if last_seq < ring.oldest_seq:
            cursor = resync_cursor(
                write_seq=write_seq,
                capacity=ring.capacity,
                chunk_size=chunk,
            )
            resynced = True

        available = write_seq - cursor
        count = min(available, chunk)
        samples = ring.read(cursor, count)

    return AudioChunk(
        new_seq=cursor + count,
        samples=samples,
        resynced=resynced,
        dropped=cursor - last_seq,
    )
