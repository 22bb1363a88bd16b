# backend/audio/ring_buffer.py
"""
Fixed-capacity circular buffer of unsigned 8-bit PCM samples.

Invariants:
- Global sample n lives in slot n mod capacity
- write_seq counts every sample ever written; starts at 0, never resets
  (Python int, so it cannot overflow)
- Samples older than write_seq - capacity are overwritten and gone
- Single producer; any number of readers

Readers never see a half-written batch: writes and snapshot reads hold
the same short lock. Overwrite by the producer is not an error; it is the
overrun case handled by audio.pull.
"""

from __future__ import annotations

import threading

import numpy as np

from constants import AUDIO_SILENCE_U8


def apply_volume(samples: np.ndarray, volume: float) -> np.ndarray:
    """
    Scale unsigned 8-bit samples around the 128 midpoint.

    Each sample is shifted to -128..127, multiplied by `volume`, rounded
    half-up, clamped, and shifted back. volume == 1.0 is the identity.
    """
    samples = np.asarray(samples, dtype=np.uint8)
    if volume == 1.0:
        return samples
    signed = samples.astype(np.float64) - AUDIO_SILENCE_U8
    scaled = np.floor(signed * volume + 0.5)
    clamped = np.clip(scaled, -128, 127)
    return (clamped + AUDIO_SILENCE_U8).astype(np.uint8)


class AudioRingBuffer:
    """
    Lock-guarded u8 ring with a monotonically increasing write sequence.

    The optional `volume` gain is applied to every batch before storing.
    """

    def __init__(self, capacity: int, *, volume: float = 1.0) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")

        self._capacity = capacity
        self._volume = volume
        self._buf = np.full(capacity, AUDIO_SILENCE_U8, dtype=np.uint8)
        self._write_seq = 0
        # Reentrant so audio.pull can hold it across write_seq + read()
        self._lock = threading.RLock()

    # -------------------------
    # Introspection
    # -------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def lock(self) -> threading.RLock:
        """Hold to get a consistent view across several calls."""
        return self._lock

    @property
    def write_seq(self) -> int:
        """Total samples ever written."""
        return self._write_seq

    @property
    def oldest_seq(self) -> int:
        """Oldest global index still retained."""
        return max(0, self._write_seq - self._capacity)

    def __len__(self) -> int:
        """Number of samples currently retained."""
        return min(self._write_seq, self._capacity)

    # -------------------------
    # Producer
    # -------------------------

    def write(self, data: bytes | bytearray | memoryview | np.ndarray) -> int:
        """
        Append a batch of samples. Returns the new write_seq.

        A batch longer than capacity still advances write_seq by its full
        length; only its last `capacity` samples are retained.
        """
        if isinstance(data, np.ndarray):
            samples = data.astype(np.uint8, copy=False).reshape(-1)
        else:
            samples = np.frombuffer(data, dtype=np.uint8)

        n = samples.shape[0]
        if n == 0:
            return self._write_seq

        samples = apply_volume(samples, self._volume)
        cap = self._capacity

        with self._lock:
            start_seq = self._write_seq
            if n > cap:
                # Only the tail survives; place it where it would have landed
                start_seq += n - cap
                samples = samples[-cap:]

            pos = start_seq % cap
            first = min(samples.shape[0], cap - pos)
            self._buf[pos:pos + first] = samples[:first]
            if first < samples.shape[0]:
                self._buf[:samples.shape[0] - first] = samples[first:]

            self._write_seq += n
            return self._write_seq

    # -------------------------
    # Readers
    # -------------------------

    def read(self, start_seq: int, count: int) -> np.ndarray:
        """
        Copy samples [start_seq, start_seq + count).

        Raises:
            ValueError if any part of the range is not retained
            (overwritten or not yet written).
        """
        with self._lock:
            return self._read_locked(start_seq, count)

    def snapshot(self) -> dict[str, int]:
        """Lightweight snapshot for logging."""
        return {
            "capacity": self._capacity,
            "write_seq": self._write_seq,
            "retained": len(self),
        }

    def _read_locked(self, start_seq: int, count: int) -> np.ndarray:
        if count < 0:
            raise ValueError("count must be >= 0")
        end_seq = start_seq + count
        if start_seq < self._write_seq - self._capacity or start_seq < 0:
            raise ValueError(f"seq {start_seq} no longer retained")
        if end_seq > self._write_seq:
            raise ValueError(f"seq {end_seq} not written yet")

        cap = self._capacity
        pos = start_seq % cap
        first = min(count, cap - pos)
        if first == count:
            return self._buf[pos:pos + count].copy()
        return np.concatenate((self._buf[pos:], self._buf[:count - first]))
