"""
Periodic capture -> transform -> publish pipeline.

Responsibilities:
- Run one capture cycle: capture, stretch to canvas, fan out per screen
- Render each screen in a worker thread and await all of them
- Publish each successful screen into the FrameStateStore
- Contain failures: a failed capture publishes nothing, a failed screen
  only affects itself
- Drive cycles on a fixed period, skipping ticks while a cycle is in flight

Non-responsibilities:
- No HTTP
- No audio
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Sequence

from PIL import Image

from observability.logger import log_event
from observability.metrics import timed
from video.capture import CaptureFailure, ImageSource
from video.frames import LogicalScreen
from video.store import FrameStateStore
from video.transform import TransformFailure, render_screen, resize_canvas


@dataclass(frozen=True)
class CycleResult:
    """
    Outcome of one pipeline cycle, for logging and tests.
    """
    captured: bool
    published: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


class FramePipeline:
    """
    One capture cycle, reusable across ticks.

    The store and the image source are injected; the pipeline holds no
    frame state of its own.
    """

    def __init__(
        self,
        *,
        source: ImageSource,
        store: FrameStateStore,
        screens: Sequence[LogicalScreen],
        canvas_width: int,
        canvas_height: int,
    ) -> None:
        self._source = source
        self._store = store
        self._screens = tuple(screens)
        self._canvas_size = (canvas_width, canvas_height)

    @property
    def screens(self) -> tuple[LogicalScreen, ...]:
        return self._screens

    async def run_cycle(self) -> CycleResult:
        """
        Capture once and publish every screen that renders successfully.

        Never raises for capture or transform problems; those are logged
        and reflected in the returned CycleResult.
        """
        with timed("frame_cycle", details={"screens": len(self._screens)}):
            try:
                image = await self._source.capture()
            except Exception as e:  # pylint: disable=broad-exception-caught
                # A misbehaving source ends the cycle like a failed capture
                log_event({
                    "event_type": "CAPTURE_FAILURE",
                    "exception": type(e).__name__,
                    "message": str(e),
                    "unexpected": not isinstance(e, CaptureFailure),
                })
                return CycleResult(captured=False)

            try:
                canvas = await asyncio.to_thread(resize_canvas, image, *self._canvas_size)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "TRANSFORM_FAILURE",
                    "stage": "resize",
                    "exception": type(e).__name__,
                    "message": str(e),
                    "unexpected": not isinstance(e, TransformFailure),
                })
                return CycleResult(
                    captured=True,
                    failed=tuple(s.id for s in self._screens),
                )

            outcomes = await asyncio.gather(
                *(self._render_and_publish(canvas, s) for s in self._screens),
                return_exceptions=True,
            )

        published: list[str] = []
        failed: list[str] = []
        for screen, outcome in zip(self._screens, outcomes):
            if isinstance(outcome, BaseException):
                failed.append(screen.id)
                log_event({
                    "event_type": "TRANSFORM_FAILURE",
                    "stage": "render",
                    "screen_id": screen.id,
                    "exception": type(outcome).__name__,
                    "message": str(outcome),
                })
            else:
                published.append(screen.id)

        return CycleResult(
            captured=True,
            published=tuple(published),
            failed=tuple(failed),
        )

    async def _render_and_publish(self, canvas: Image.Image, screen: LogicalScreen) -> None:
        with timed("screen_render", screen_id=screen.id):
            text = await asyncio.to_thread(render_screen, canvas, screen)
        self._store.publish(screen.id, text)


class FrameScheduler:
    """
    Fixed-period driver for FramePipeline.run_cycle().

    Overlap policy: SKIP. When a tick fires while the previous cycle is
    still running, the tick is dropped and counted. A stale frame is
    preferred over a growing backlog.

    Lifecycle:
    1. start() creates the ticker task
    2. each tick launches a cycle task unless one is in flight
    3. stop() cancels the ticker, then awaits the in-flight cycle
    """

    def __init__(self, *, pipeline: FramePipeline, frame_rate: float) -> None:
        if frame_rate <= 0:
            raise ValueError("frame_rate must be > 0")

        self._pipeline = pipeline
        self._period_s = 1.0 / frame_rate
        self._ticker: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[CycleResult] | None = None

        self.cycles_started: int = 0
        self.skipped_ticks: int = 0

    @property
    def period_s(self) -> float:
        return self._period_s

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def start(self) -> None:
        """Begin ticking. Idempotent."""
        if self.running:
            return
        self._ticker = asyncio.create_task(self._tick_loop(), name="frame-scheduler")

    def tick(self) -> bool:
        """
        Handle one timer tick.

        Returns:
            True if a new cycle was launched, False if the tick was skipped.
        """
        if self._cycle is not None and not self._cycle.done():
            self.skipped_ticks += 1
            log_event({
                "event_type": "FRAME_TICK_SKIPPED",
                "skipped_total": self.skipped_ticks,
            })
            return False

        self._report_finished_cycle()
        self.cycles_started += 1
        self._cycle = asyncio.create_task(self._pipeline.run_cycle(), name="frame-cycle")
        return True

    async def stop(self) -> None:
        """
        Stop ticking and wait for any in-flight cycle to finish.
        """
        if self._ticker is not None:
            self._ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ticker
            self._ticker = None

        if self._cycle is not None:
            # Let the last cycle publish; it is bounded by the capture timeout
            await asyncio.gather(self._cycle, return_exceptions=True)
            self._report_finished_cycle()
            self._cycle = None

    def _report_finished_cycle(self) -> None:
        """Log the error of a finished cycle nobody awaited."""
        cycle = self._cycle
        if cycle is None or not cycle.done() or cycle.cancelled():
            return
        error = cycle.exception()
        if error is not None:
            log_event({
                "event_type": "FRAME_CYCLE_ERROR",
                "exception": type(error).__name__,
                "message": str(error),
            })

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self.tick()
            next_tick += self._period_s
            delay = next_tick - loop.time()
            if delay < 0:
                # Fell behind; realign instead of firing a burst of ticks
                next_tick = loop.time()
                delay = 0.0
            await asyncio.sleep(delay)
