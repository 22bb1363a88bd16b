# pylint: disable=missing-module-docstring,missing-function-docstring

from video.store import FrameStateStore


def test_unknown_screen_reads_empty_string():
    store = FrameStateStore()

    assert store.read("1") == ""
    assert store.screen_ids() == ()


def test_publish_replaces_previous_frame():
    store = FrameStateStore()

    store.publish("1", "first")
    store.publish("1", "second")

    assert store.read("1") == "second"


def test_screens_are_independent():
    store = FrameStateStore()

    store.publish("1", "left")
    store.publish("2", "right")

    assert store.read("1") == "left"
    assert store.read("2") == "right"
    assert set(store.screen_ids()) == {"1", "2"}

