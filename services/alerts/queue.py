"""
Sequential alert presentation.

Alerts are shown one at a time, in enqueue order, each running the fixed
lifecycle enter -> hold -> exit. The worker is single-flight: phase
transitions are chained through deferred callbacks and the next alert only
starts after the current one has fully exited (or failed).
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Optional

from core.timers import TimerHandle, Timers
from shared.feed.errors import CapabilityUnsupported
from shared.feed.models import Alert
from shared.feed.surface import OverlaySurface
from shared.logging.logger import get_logger

log = get_logger("alerts.queue")


class AlertPhase(Enum):
    ENTER = "enter"
    HOLD = "hold"
    EXIT = "exit"


@dataclass(frozen=True)
class AlertTimings:
    enter: float = 0.7
    hold: float = 4.0
    exit: float = 0.7

    @property
    def total(self) -> float:
        return self.enter + self.hold + self.exit


class AlertQueue:
    def __init__(
        self,
        *,
        timers: Timers,
        surface: Optional[OverlaySurface],
        timings: Optional[AlertTimings] = None,
        on_failure: Optional[Callable[[Alert, Exception], None]] = None,
    ):
        self._timers = timers
        self._surface = surface
        self._timings = timings or AlertTimings()
        self._on_failure = on_failure

        self._pending: Deque[Alert] = deque()
        self._current: Optional[Alert] = None
        self._phase: Optional[AlertPhase] = None
        self._timer: Optional[TimerHandle] = None
        self._presentation = 0

        self.presented = 0
        self.failed = 0

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def enqueue(self, alert: Alert) -> None:
        self._pending.append(alert)
        log.debug(f"Alert queued for {alert.display_name} (pending={len(self._pending)})")
        self._pump()

    @property
    def current(self) -> Optional[Alert]:
        return self._current

    @property
    def current_phase(self) -> Optional[AlertPhase]:
        return self._phase

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def busy(self) -> bool:
        return self._current is not None

    def clear(self) -> None:
        """Drop queued alerts and abort the one on screen."""
        self._pending.clear()
        self._timers.cancel(self._timer)
        self._timer = None
        had_current = self._current is not None
        self._current = None
        self._phase = None
        self._presentation += 1
        if had_current and self._surface is not None:
            try:
                self._surface.hide_alert()
            except Exception as e:
                log.warning(f"Failed to hide alert during clear: {e}")

    # ------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------

    def _pump(self) -> None:
        while self._current is None and self._pending:
            alert = self._pending.popleft()
            self._current = alert
            self._presentation += 1
            try:
                self._enter(alert)
            except Exception as e:
                self._abandon(alert, e)
                continue
            return

    def _enter(self, alert: Alert) -> None:
        if self._surface is None:
            raise CapabilityUnsupported("alerts", "no display surface attached")

        self._phase = AlertPhase.ENTER
        self._surface.show_alert(alert, AlertPhase.ENTER.value)
        log.info(f"Alert: {alert.display_name} {alert.message}")
        self._schedule(self._timings.enter, self._hold)

    def _hold(self) -> None:
        alert = self._current
        self._phase = AlertPhase.HOLD
        self._surface.show_alert(alert, AlertPhase.HOLD.value)
        if alert.milestone is not None:
            self._surface.celebrate(alert)
        self._schedule(self._timings.hold, self._exit)

    def _exit(self) -> None:
        self._phase = AlertPhase.EXIT
        self._surface.show_alert(self._current, AlertPhase.EXIT.value)
        self._schedule(self._timings.exit, self._finish)

    def _finish(self) -> None:
        self._surface.hide_alert()
        self.presented += 1
        self._release()

    def _schedule(self, delay: float, step: Callable[[], None]) -> None:
        presentation = self._presentation
        alert = self._current

        def _run() -> None:
            if presentation != self._presentation or self._current is not alert:
                # Cleared or superseded since scheduling
                return
            self._timer = None
            try:
                step()
            except Exception as e:
                self._abandon(alert, e)
                self._pump()

        self._timer = self._timers.call_later(
            delay, _run, label=f"alert:{step.__name__.strip('_')}"
        )

    def _abandon(self, alert: Alert, error: Exception) -> None:
        self.failed += 1
        log.warning(f"Alert for {alert.display_name} abandoned: {error}")
        if self._on_failure is not None:
            try:
                self._on_failure(alert, error)
            except Exception as e:
                log.warning(f"Alert failure hook raised: {e}")
        self._current = None
        self._phase = None
        self._timers.cancel(self._timer)
        self._timer = None

    def _release(self) -> None:
        self._current = None
        self._phase = None
        self._pump()


__all__ = ["AlertPhase", "AlertQueue", "AlertTimings"]
