"""
Runtime shell for one desktop stream server process.

Responsibilities:
- Own the only shared mutable state: FrameStateStore and AudioRingBuffer
- Own the producers: FrameScheduler (video) and AudioCapture (audio)
- Expose the narrow read API used by the HTTP layer
- Run the startup checks and the structured shutdown sequence

Non-responsibilities:
- No HTTP request parsing
- No palette / glyph logic
"""

from __future__ import annotations

from typing import Any

from audio.capture import AudioCapture, AudioCaptureError
from audio.pull import AudioChunk, PullResult, pull_chunk
from audio.ring_buffer import AudioRingBuffer
from config import AppConfig
from observability.logger import log_event
from constants import AUDIO_BIT_DEPTH, AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ
from video.capture import (
    CaptureToolMissing,
    ImageSource,
    ScreenshotToolSource,
    clear_temp_frames,
)
from video.pipeline import FramePipeline, FrameScheduler
from video.store import FrameStateStore


class StartupError(Exception):
    """
    Unrecoverable startup problem (e.g. an external tool is missing).

    The process must exit with this message rather than run degraded.
    """


class AudioUnavailable(Exception):
    """Audio was requested while audio capture is disabled."""


class StreamRuntime:
    """
    Wires producers to shared state and shuts them down in order.

    Guarantees:
    - Exactly one writer per shared component
    - stop() never leaves a capture process or temp file behind
    - Reads keep working after stop() and return the last state
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        image_source: ImageSource | None = None,
        audio_capture: AudioCapture | None = None,
    ) -> None:
        self._config = config
        self._source = image_source or ScreenshotToolSource(config.screenshot)

        self.store = FrameStateStore()
        self.pipeline = FramePipeline(
            source=self._source,
            store=self.store,
            screens=config.canvas.screens,
            canvas_width=config.canvas.total_width,
            canvas_height=config.canvas.total_height,
        )
        self.scheduler = FrameScheduler(
            pipeline=self.pipeline,
            frame_rate=config.screenshot.frame_rate,
        )

        self.ring: AudioRingBuffer | None = None
        self.audio_capture: AudioCapture | None = None
        if config.audio.enabled:
            self.ring = AudioRingBuffer(
                config.audio.buffer_capacity,
                volume=config.audio.volume,
            )
            self.audio_capture = audio_capture or AudioCapture(
                config=config.audio,
                ring=self.ring,
            )

        self._started = False

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def audio_enabled(self) -> bool:
        return self.ring is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def check_dependencies(self) -> None:
        """
        Verify external tools exist before any task starts.

        Raises:
            StartupError naming the missing tool.
        """
        ensure = getattr(self._source, "ensure_available", None)
        if ensure is not None:
            try:
                ensure()
            except CaptureToolMissing as e:
                raise StartupError(str(e)) from e

        if self.audio_capture is not None:
            try:
                self.audio_capture.ensure_available()
            except AudioCaptureError as e:
                raise StartupError(str(e)) from e

    async def start(self, *, check_tools: bool = True) -> None:
        if self._started:
            return
        if check_tools:
            self.check_dependencies()

        clear_temp_frames()
        self.scheduler.start()

        if self.audio_capture is not None:
            try:
                await self.audio_capture.start()
            except AudioCaptureError as e:
                await self.scheduler.stop()
                raise StartupError(str(e)) from e
        else:
            log_event({"event_type": "AUDIO_CAPTURE_DISABLED"})

        self._started = True
        log_event({
            "event_type": "STREAM_RUNTIME_STARTED",
            "screens": [s.id for s in self._config.canvas.screens],
            "frame_period_s": self.scheduler.period_s,
            "audio_enabled": self.ring is not None,
        })

    async def stop(self) -> None:
        """
        Shutdown sequence:
        1. stop the capture timer and await the in-flight cycle
        2. terminate the audio capture process
        3. remove transient capture files
        Reads remain served from the last published state.
        """
        log_event({"event_type": "STREAM_RUNTIME_STOPPING"})

        await self.scheduler.stop()
        if self.audio_capture is not None:
            await self.audio_capture.stop()
        clear_temp_frames()

        self._started = False
        log_event({
            "event_type": "STREAM_RUNTIME_STOPPED",
            "cycles_started": self.scheduler.cycles_started,
            "skipped_ticks": self.scheduler.skipped_ticks,
            "published_screens": list(self.store.screen_ids()),
        })

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_frame_text(self, screen_id: str) -> str:
        """Latest frame text for the screen, "" before the first frame."""
        return self.store.read(screen_id)

    def get_audio_chunk(self, requested_size: int, last_seq: int) -> PullResult:
        """
        Next unseen samples for a client cursor.

        Raises:
            AudioUnavailable if audio capture is disabled.
            InvalidChunkSize / InvalidSequenceNumber on bad input.
        """
        if self.ring is None:
            raise AudioUnavailable("audio capture is disabled")

        result = pull_chunk(self.ring, requested_size, last_seq)
        if isinstance(result, AudioChunk) and result.resynced:
            log_event({
                "event_type": "AUDIO_CLIENT_RESYNC",
                "last_seq": last_seq,
                "resumed_at": result.start_seq,
                "dropped": result.dropped,
                "write_seq": self.ring.write_seq,
            })
        return result

    def get_audio_info(self) -> dict[str, Any]:
        """Static stream format plus live buffer position."""
        ring = self.ring
        capture = self.audio_capture
        return {
            "enabled": ring is not None,
            "sampleRate": AUDIO_SAMPLE_RATE_HZ,
            "channels": AUDIO_CHANNELS,
            "bitDepth": AUDIO_BIT_DEPTH,
            "signed": True,
            "bufferCapacity": ring.capacity if ring is not None else 0,
            "currentWriteSeq": ring.write_seq if ring is not None else 0,
            "chunkSize": self._config.audio.chunk_size,
            "captureRunning": capture.running if capture is not None else False,
        }
