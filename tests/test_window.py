from dataclasses import dataclass

import pytest

from core.timers import ManualTimers
from shared.feed.window import BoundedEntityWindow, RemovalReason


@dataclass
class Item:
    key: str
    value: int = 0


def build_window(timers, *, capacity=3, ttl=None):
    removed = []
    window = BoundedEntityWindow(
        name="test",
        capacity=capacity,
        ttl=ttl,
        key=lambda item: item.key,
        timers=timers,
        on_remove=lambda item, reason: removed.append((item.key, reason)),
    )
    return window, removed


def test_capacity_evicts_oldest_first() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, capacity=3)

    for key in "abcde":
        assert window.insert(Item(key))
        assert len(window) <= 3

    assert window.keys() == ["c", "d", "e"]
    assert removed == [("a", RemovalReason.EVICTED), ("b", RemovalReason.EVICTED)]


def test_duplicate_key_is_rejected_without_side_effects() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers)

    assert window.insert(Item("a", 1))
    assert not window.insert(Item("a", 2))

    assert len(window) == 1
    assert window.get("a").value == 1
    assert removed == []


def test_ttl_expires_entity_once() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, ttl=10)

    window.insert(Item("a"))
    timers.advance(9.9)
    assert "a" in window

    timers.advance(0.2)
    assert "a" not in window
    assert removed == [("a", RemovalReason.EXPIRED)]

    timers.advance(100)
    assert removed == [("a", RemovalReason.EXPIRED)]


def test_touch_moves_to_newest_and_restarts_expiry() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, ttl=10)

    window.insert(Item("a"))
    window.insert(Item("b"))
    timers.advance(8)

    assert window.touch("a", lambda item: setattr(item, "value", 7))
    assert window.keys() == ["b", "a"]
    assert window.get("a").value == 7

    timers.advance(5)
    assert window.keys() == ["a"]
    assert removed == [("b", RemovalReason.EXPIRED)]

    timers.advance(6)
    assert len(window) == 0
    assert removed[-1] == ("a", RemovalReason.EXPIRED)


def test_touch_unknown_key_returns_false() -> None:
    timers = ManualTimers()
    window, _ = build_window(timers)

    assert window.touch("missing") is False


def test_evicted_entity_expiry_is_a_no_op() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, capacity=1, ttl=5)

    window.insert(Item("a"))
    window.insert(Item("b"))
    timers.advance(5)

    assert removed == [("a", RemovalReason.EVICTED), ("b", RemovalReason.EXPIRED)]


def test_reinserted_key_is_not_expired_by_old_timer() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, capacity=5, ttl=10)

    window.insert(Item("a"))
    timers.advance(6)
    window.remove("a")
    window.insert(Item("a"))

    timers.advance(6)
    assert "a" in window

    timers.advance(5)
    assert "a" not in window
    assert removed.count(("a", RemovalReason.EXPIRED)) == 2


def test_clear_skips_removal_callbacks_and_cancels_timers() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, ttl=10)

    window.insert(Item("a"))
    window.insert(Item("b"))

    assert window.clear() == 2
    assert len(window) == 0
    assert removed == []
    assert timers.pending == 0


def test_remove_where_returns_removed_entities() -> None:
    timers = ManualTimers()
    window, removed = build_window(timers, capacity=5)

    for i, key in enumerate("abcd"):
        window.insert(Item(key, i))

    gone = window.remove_where(lambda item: item.value % 2 == 0)

    assert [item.key for item in gone] == ["a", "c"]
    assert window.keys() == ["b", "d"]
    assert [reason for _, reason in removed] == [RemovalReason.EXPIRED] * 2


def test_failing_removal_callback_does_not_break_window() -> None:
    timers = ManualTimers()

    def explode(item, reason):
        raise RuntimeError("render failed")

    window = BoundedEntityWindow(
        name="test",
        capacity=1,
        key=lambda item: item.key,
        timers=timers,
        on_remove=explode,
    )
    window.insert(Item("a"))
    window.insert(Item("b"))

    assert window.keys() == ["b"]


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BoundedEntityWindow(name="bad", capacity=0, key=str, timers=ManualTimers())
