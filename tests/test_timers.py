import asyncio

from core.timers import LoopTimers, ManualTimers


def test_manual_timers_fire_in_due_then_schedule_order() -> None:
    timers = ManualTimers(start=0.0)
    fired = []

    timers.call_later(2, lambda: fired.append("b"))
    timers.call_later(1, lambda: fired.append("a"))
    timers.call_later(2, lambda: fired.append("c"))

    timers.advance(1.5)
    assert fired == ["a"]
    timers.advance(0.5)
    assert fired == ["a", "b", "c"]
    assert timers.now() == 2.0


def test_cancelled_handle_never_fires() -> None:
    timers = ManualTimers(start=0.0)
    fired = []

    handle = timers.call_at(5, lambda: fired.append("x"))
    timers.cancel(handle)
    timers.advance(10)

    assert fired == []
    assert handle.cancelled
    assert timers.pending == 0


def test_callback_errors_are_contained() -> None:
    timers = ManualTimers(start=0.0)
    fired = []

    def boom():
        raise RuntimeError("boom")

    timers.call_later(1, boom)
    timers.call_later(1, lambda: fired.append("after"))
    timers.advance(1)

    assert fired == ["after"]


def test_call_every_repeats_until_cancelled() -> None:
    timers = ManualTimers(start=0.0)
    ticks = []

    handle = timers.call_every(2, lambda: ticks.append(timers.now()))
    timers.advance(7)
    assert ticks == [2.0, 4.0, 6.0]

    handle.cancel()
    timers.advance(10)
    assert ticks == [2.0, 4.0, 6.0]


def test_call_every_survives_failing_callback() -> None:
    timers = ManualTimers(start=0.0)
    calls = []

    def flaky():
        calls.append(timers.now())
        raise ValueError("flaky")

    timers.call_every(1, flaky)
    timers.advance(3)

    assert calls == [1.0, 2.0, 3.0]


def test_loop_timers_run_on_event_loop() -> None:
    async def scenario():
        timers = LoopTimers()
        fired = asyncio.Event()
        cancelled = []

        timers.call_later(0.01, fired.set)
        handle = timers.call_later(0.01, lambda: cancelled.append(True))
        handle.cancel()

        await asyncio.wait_for(fired.wait(), timeout=1.0)
        await asyncio.sleep(0.02)
        return cancelled

    assert asyncio.run(scenario()) == []
