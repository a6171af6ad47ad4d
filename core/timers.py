"""
Deferred callback scheduling for the widget runtime.

Everything timer-driven in the feed (TTL expiry, alert phase transitions,
presence sweeps) goes through a Timers instance so the same code runs on the
asyncio loop in production and on a virtual clock in tests.

Guarantees shared by both implementations:
- a callback scheduled for time T never runs before T
- callbacks due at the same time run in scheduling order
- a cancelled handle never fires
- an exception raised by a callback is logged and never propagates
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from shared.logging.logger import get_logger

log = get_logger("core.timers")

Callback = Callable[[], None]


class TimerHandle:
    """Cancellable reference to a scheduled callback."""

    __slots__ = ("label", "due", "_callback", "_cancelled", "_inner")

    def __init__(self, due: float, callback: Callback, label: str = ""):
        self.due = due
        self.label = label
        self._callback = callback
        self._cancelled = False
        self._inner = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        inner = self._inner
        self._inner = None
        if inner is not None:
            inner.cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "pending"
        return f"<TimerHandle {self.label or '?'} due={self.due:.3f} {state}>"


class Timers(ABC):
    """Single-threaded deferred callback scheduler."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds (epoch based)."""
        raise NotImplementedError

    @abstractmethod
    def _schedule(self, handle: TimerHandle, delay: float) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------

    def call_later(self, delay: float, callback: Callback, *, label: str = "") -> TimerHandle:
        delay = max(0.0, float(delay))
        handle = TimerHandle(self.now() + delay, callback, label)
        self._schedule(handle, delay)
        return handle

    def call_at(self, when: float, callback: Callback, *, label: str = "") -> TimerHandle:
        return self.call_later(when - self.now(), callback, label=label)

    def call_every(self, interval: float, callback: Callback, *, label: str = "") -> TimerHandle:
        """
        Run callback every `interval` seconds until the returned handle is
        cancelled. The next tick is scheduled after the callback returns.
        """
        interval = max(0.001, float(interval))
        outer = TimerHandle(self.now() + interval, callback, label)

        def _tick() -> None:
            if outer.cancelled:
                return
            self._fire(outer)
            if outer.cancelled:
                return
            nxt = TimerHandle(self.now() + interval, _tick, label)
            outer.due = nxt.due
            outer._inner = nxt
            self._schedule(nxt, interval)

        first = TimerHandle(outer.due, _tick, label)
        outer._inner = first
        self._schedule(first, interval)
        return outer

    @staticmethod
    def cancel(handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------

    @staticmethod
    def _fire(handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        try:
            handle._callback()
        except Exception as e:
            log.exception(f"Deferred callback '{handle.label or '?'}' failed: {e}")


class LoopTimers(Timers):
    """Timers backed by the running asyncio loop, wall-clock `now()`."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.time()

    def _schedule(self, handle: TimerHandle, delay: float) -> None:
        handle._inner = self.loop.call_later(delay, self._fire, handle)


class ManualTimers(Timers):
    """
    Virtual clock: nothing fires until advance() moves time forward.

    Used by tests and offline replays.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = float(start)
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, TimerHandle]] = []

    def now(self) -> float:
        return self._now

    def _schedule(self, handle: TimerHandle, delay: float) -> None:
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every callback that becomes due."""
        target = self._now + max(0.0, float(seconds))
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            self._fire(handle)
        self._now = target

    def run_all(self, limit: int = 10_000) -> None:
        """Fire pending one-shot callbacks in order (bounded for safety)."""
        for _ in range(limit):
            if not self._queue:
                return
            due, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            self._fire(handle)
