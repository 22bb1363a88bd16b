# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import pytest
from PIL import Image

import video.pipeline as pipeline_mod
from protocol.text import parse_frame
from video.capture import CaptureFailure
from video.frames import LogicalScreen
from video.pipeline import FramePipeline, FrameScheduler
from video.store import FrameStateStore


class ScriptedSource:
    """Returns (or raises) the scripted outcomes in order."""

    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    async def capture(self) -> Image.Image:
        self.calls += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class GatedSource:
    """Blocks every capture until the gate opens."""

    def __init__(self, gate: asyncio.Event, image: Image.Image) -> None:
        self._gate = gate
        self._image = image
        self.calls = 0

    async def capture(self) -> Image.Image:
        self.calls += 1
        await self._gate.wait()
        return self._image


SCREEN = LogicalScreen(id="1", x=0, y=0, width=8, height=4)


def desktop(color: tuple[int, int, int] = (30, 60, 90)) -> Image.Image:
    return Image.new("RGB", (64, 32), color)


def make_pipeline(source: Any, store: FrameStateStore, *screens: LogicalScreen) -> FramePipeline:
    return FramePipeline(
        source=source,
        store=store,
        screens=screens or (SCREEN,),
        canvas_width=16,
        canvas_height=8,
    )


@pytest.fixture
def emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(pipeline_mod, "log_event", events.append)
    return events


# ---------------------------------------------------------------------
# Capture failures
# ---------------------------------------------------------------------

def test_failed_captures_publish_nothing_then_success_publishes(
    emitted: list[dict[str, Any]],
) -> None:
    store = FrameStateStore()
    source = ScriptedSource([
        CaptureFailure("tool crashed"),
        CaptureFailure("timed out"),
        desktop(),
    ])
    pipeline = make_pipeline(source, store)

    async def scenario() -> None:
        first = await pipeline.run_cycle()
        assert first.captured is False
        assert store.read("1") == ""

        second = await pipeline.run_cycle()
        assert second.captured is False
        assert store.read("1") == ""

        third = await pipeline.run_cycle()
        assert third.captured is True
        assert third.published == ("1",)

    asyncio.run(scenario())

    colors, rows = parse_frame(store.read("1"))
    assert colors[0] == (30, 60, 90)
    assert rows == ["0" * 8] * 4
    assert [e["event_type"] for e in emitted].count("CAPTURE_FAILURE") == 2


def test_failed_capture_keeps_previous_frame(emitted: list[dict[str, Any]]) -> None:
    store = FrameStateStore()
    source = ScriptedSource([desktop(), CaptureFailure("gone")])
    pipeline = make_pipeline(source, store)

    async def scenario() -> None:
        await pipeline.run_cycle()
        before = store.read("1")
        await pipeline.run_cycle()
        assert store.read("1") == before

    asyncio.run(scenario())


def test_unexpected_source_error_is_contained(emitted: list[dict[str, Any]]) -> None:
    store = FrameStateStore()
    source = ScriptedSource([RuntimeError("boom"), desktop()])
    pipeline = make_pipeline(source, store)

    async def scenario() -> None:
        first = await pipeline.run_cycle()
        assert first.captured is False
        assert store.read("1") == ""

        second = await pipeline.run_cycle()
        assert second.published == ("1",)

    asyncio.run(scenario())

    failures = [e for e in emitted if e["event_type"] == "CAPTURE_FAILURE"]
    assert len(failures) == 1
    assert failures[0]["exception"] == "RuntimeError"
    assert failures[0]["message"] == "boom"
    assert failures[0]["unexpected"] is True
    assert store.read("1") != ""


def test_unexpected_resize_error_is_contained(
    emitted: list[dict[str, Any]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken_resize(*_args: Any) -> Image.Image:
        raise MemoryError("canvas too large")

    monkeypatch.setattr(pipeline_mod, "resize_canvas", broken_resize)
    store = FrameStateStore()

    result = asyncio.run(make_pipeline(ScriptedSource([desktop()]), store).run_cycle())

    assert result.captured is True
    assert result.failed == ("1",)
    failures = [e for e in emitted if e["event_type"] == "TRANSFORM_FAILURE"]
    assert failures[0]["stage"] == "resize"
    assert failures[0]["exception"] == "MemoryError"


# ---------------------------------------------------------------------
# Per-screen isolation
# ---------------------------------------------------------------------

def test_failing_screen_does_not_block_others(emitted: list[dict[str, Any]]) -> None:
    store = FrameStateStore()
    good = LogicalScreen(id="good", x=0, y=0, width=8, height=8)
    # Extends past the 16x8 canvas
    bad = LogicalScreen(id="bad", x=12, y=0, width=8, height=8)
    pipeline = make_pipeline(ScriptedSource([desktop()]), store, bad, good)

    result = asyncio.run(pipeline.run_cycle())

    assert result.published == ("good",)
    assert result.failed == ("bad",)
    assert store.read("good") != ""
    assert store.read("bad") == ""

    failures = [e for e in emitted if e["event_type"] == "TRANSFORM_FAILURE"]
    assert len(failures) == 1
    assert failures[0]["screen_id"] == "bad"


def test_each_screen_gets_its_own_palette(emitted: list[dict[str, Any]]) -> None:
    image = Image.new("RGB", (16, 8), (200, 0, 0))
    image.paste((0, 0, 200), (8, 0, 16, 8))
    left = LogicalScreen(id="L", x=0, y=0, width=8, height=8)
    right = LogicalScreen(id="R", x=8, y=0, width=8, height=8)
    store = FrameStateStore()

    asyncio.run(make_pipeline(ScriptedSource([image]), store, left, right).run_cycle())

    assert parse_frame(store.read("L"))[0][0] == (200, 0, 0)
    assert parse_frame(store.read("R"))[0][0] == (0, 0, 200)


# ---------------------------------------------------------------------
# Scheduler overlap policy
# ---------------------------------------------------------------------

def test_tick_is_skipped_while_cycle_in_flight(emitted: list[dict[str, Any]]) -> None:
    store = FrameStateStore()

    async def scenario() -> FrameScheduler:
        gate = asyncio.Event()
        source = GatedSource(gate, desktop())
        scheduler = FrameScheduler(pipeline=make_pipeline(source, store), frame_rate=10)

        assert scheduler.tick() is True
        await asyncio.sleep(0)
        assert scheduler.tick() is False
        assert scheduler.tick() is False
        assert source.calls == 1

        gate.set()
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert scheduler.cycles_started == 1
    assert scheduler.skipped_ticks == 2
    assert store.read("1") != ""
    assert sum(e["event_type"] == "FRAME_TICK_SKIPPED" for e in emitted) == 2


def test_scheduler_runs_and_stops_cleanly(emitted: list[dict[str, Any]]) -> None:
    store = FrameStateStore()

    class InstantSource:
        async def capture(self) -> Image.Image:
            return desktop()

    async def scenario() -> FrameScheduler:
        scheduler = FrameScheduler(
            pipeline=make_pipeline(InstantSource(), store),
            frame_rate=50,
        )
        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()
        assert not scheduler.running
        return scheduler

    scheduler = asyncio.run(scenario())

    assert scheduler.cycles_started >= 1
    assert store.read("1") != ""


def test_scheduler_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        FrameScheduler(pipeline=make_pipeline(ScriptedSource([]), FrameStateStore()), frame_rate=0)


def test_crashed_cycle_is_logged_on_next_tick(emitted: list[dict[str, Any]]) -> None:
    class CrashingPipeline:
        async def run_cycle(self) -> None:
            raise RuntimeError("cycle crashed")

    async def scenario() -> FrameScheduler:
        scheduler = FrameScheduler(pipeline=CrashingPipeline(), frame_rate=10)  # type: ignore[arg-type]
        assert scheduler.tick() is True
        await asyncio.sleep(0)
        assert scheduler.tick() is True
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert scheduler.cycles_started == 2
    errors = [e for e in emitted if e["event_type"] == "FRAME_CYCLE_ERROR"]
    # One from the second tick, one from stop() for the last cycle
    assert len(errors) == 2
    assert errors[0]["message"] == "cycle crashed"
