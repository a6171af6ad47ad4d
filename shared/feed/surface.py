"""
Display surfaces.

A surface is where entities become visible. The feed components only ever
tell a surface what exists and in what order; how it is drawn belongs to
whatever consumes the surface (the browser source polling the overlay API,
the console POC, tests).
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from shared.feed.models import Alert, Chatter, DisplayMessage
from shared.logging.logger import get_logger

log = get_logger("feed.surface")


class OverlaySurface(ABC):
    """Render target for the chat feed, presence list and alerts."""

    # ------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------

    @abstractmethod
    def add_message(self, message: DisplayMessage) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_message(self, message_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_messages(self) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------

    @abstractmethod
    def set_chatters(self, chatters: List[Chatter], mode: str) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------

    @abstractmethod
    def show_alert(self, alert: Alert, phase: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def hide_alert(self) -> None:
        raise NotImplementedError

    def celebrate(self, alert: Alert) -> None:
        """Milestone celebration; optional."""


class SnapshotSurface(OverlaySurface):
    """
    In-memory surface exposing an immutable snapshot of what is visible.

    Mutations happen on the loop thread only. Each mutation rebuilds the
    published snapshot and swaps the reference, so readers on other threads
    (the overlay API) always see a complete state.
    """

    def __init__(self, *, celebration_limit: int = 10):
        self._messages: List[DisplayMessage] = []
        self._chatters: List[Chatter] = []
        self._chatter_mode = "letter"
        self._alert: Optional[Alert] = None
        self._alert_phase: Optional[str] = None
        self._celebrations: List[Dict[str, Any]] = []
        self._celebration_limit = max(1, int(celebration_limit))
        self._version = 0
        self._snapshot: Dict[str, Any] = {}
        self._publish()

    # ------------------------------------------------------------

    def add_message(self, message: DisplayMessage) -> None:
        self._messages.append(message)
        self._publish()

    def remove_message(self, message_id: str) -> None:
        before = len(self._messages)
        self._messages = [m for m in self._messages if m.id != message_id]
        if len(self._messages) != before:
            self._publish()

    def clear_messages(self) -> None:
        self._messages = []
        self._publish()

    def set_chatters(self, chatters: List[Chatter], mode: str) -> None:
        self._chatters = [copy.copy(c) for c in chatters]
        self._chatter_mode = mode
        self._publish()

    def show_alert(self, alert: Alert, phase: str) -> None:
        self._alert = alert
        self._alert_phase = phase
        self._publish()

    def hide_alert(self) -> None:
        self._alert = None
        self._alert_phase = None
        self._publish()

    def celebrate(self, alert: Alert) -> None:
        self._celebrations.append(
            {
                "subject_id": alert.subject_id,
                "display_name": alert.display_name,
                "milestone": alert.milestone,
                "visit_count": alert.visit_count,
            }
        )
        del self._celebrations[: -self._celebration_limit]
        log.info(f"Milestone celebration: {alert.display_name} ({alert.visit_count} visits)")
        self._publish()

    # ------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._version

    @property
    def alert_phase(self) -> Optional[str]:
        return self._alert_phase

    def message_ids(self) -> List[str]:
        return [m.id for m in self._messages]

    def snapshot(self) -> Dict[str, Any]:
        return self._snapshot

    def _publish(self) -> None:
        self._version += 1
        alert = None
        if self._alert is not None:
            alert = {
                "subject_id": self._alert.subject_id,
                "display_name": self._alert.display_name,
                "color": self._alert.color,
                "visit_count": self._alert.visit_count,
                "message": self._alert.message,
                "milestone": self._alert.milestone,
                "phase": self._alert_phase,
            }

        self._snapshot = {
            "version": self._version,
            "messages": [m.to_dict() for m in self._messages],
            "chatters": {
                "mode": self._chatter_mode,
                "items": [c.to_record() for c in self._chatters],
            },
            "alert": alert,
            "celebrations": list(self._celebrations),
        }


__all__ = ["OverlaySurface", "SnapshotSurface"]
