"""
Visit counter and welcome alerts.

Counts how many streams each viewer has chatted in. The first chat line of a
stream (per viewer) counts a visit, produces a greeting for chat and queues
a welcome alert. Welcome commands count a visit on their own, with a
per-viewer cooldown.

Persisted keys:
    userVisits  {username: {count, lastUsed, hasChattedThisStream}}
    streamDate  day marker ("Mon Oct 19 2026"); a new day resets the
                per-stream flags
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.timers import Timers
from services.alerts.queue import AlertQueue
from shared.feed.models import DEFAULT_COLOR, Alert, ChatMessage
from shared.logging.logger import get_logger
from shared.storage.kv_store import KeyValueStore

log = get_logger("alerts.visits")

VISITS_KEY = "userVisits"
STREAM_DATE_KEY = "streamDate"

DATE_FORMAT = "%a %b %d %Y"


@dataclass
class VisitRecord:
    count: int = 0
    last_used: int = 0  # epoch ms
    has_chatted_this_stream: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "lastUsed": self.last_used,
            "hasChattedThisStream": self.has_chatted_this_stream,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["VisitRecord"]:
        if not isinstance(raw, dict):
            return None
        try:
            return cls(
                count=max(0, int(raw.get("count", 0))),
                last_used=int(raw.get("lastUsed") or 0),
                has_chatted_this_stream=bool(raw.get("hasChattedThisStream", False)),
            )
        except (TypeError, ValueError):
            return None


def first_time_greeting(name: str) -> str:
    return f"Welcome to the channel {name}! Thanks for chatting for the very first time! 🎉"


def milestone_greeting(name: str, count: int) -> str:
    return f"🎉 Amazing! {name} has been here {count} times! Thank you for your continued support! 🎉"


def welcome_back_greeting(name: str) -> str:
    return f"Welcome back {name}! 👋"


class VisitTracker:
    def __init__(
        self,
        *,
        timers: Timers,
        store: KeyValueStore,
        queue: Optional[AlertQueue],
        milestones: List[int],
        welcome_cooldown_hours: float = 24.0,
    ):
        self._timers = timers
        self._store = store
        self._queue = queue
        self._milestones = set(milestones)
        self._cooldown_ms = int(welcome_cooldown_hours * 3600 * 1000)
        self._visits: Dict[str, VisitRecord] = {}
        self._stream_date: Optional[str] = None

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------

    def _today(self) -> str:
        return datetime.fromtimestamp(self._timers.now()).strftime(DATE_FORMAT)

    def _now_ms(self) -> int:
        return int(self._timers.now() * 1000)

    def load(self) -> int:
        raw = self._store.get(VISITS_KEY, {})
        if not isinstance(raw, dict):
            log.warning("Persisted visit counters are not an object; ignoring")
            raw = {}

        self._visits = {}
        for username, entry in raw.items():
            record = VisitRecord.from_dict(entry)
            if record is not None:
                self._visits[str(username)] = record

        stored_date = self._store.get_raw(STREAM_DATE_KEY)
        self._stream_date = stored_date if isinstance(stored_date, str) else None
        if self._stream_date != self._today():
            self.reset_stream_day()

        log.info(f"Visit counters restored for {len(self._visits)} viewer(s)")
        return len(self._visits)

    def save(self) -> None:
        self._store.set(VISITS_KEY, {k: v.to_dict() for k, v in self._visits.items()})
        if self._stream_date:
            self._store.set(STREAM_DATE_KEY, self._stream_date)

    def reset_stream_day(self) -> None:
        self._stream_date = self._today()
        for record in self._visits.values():
            record.has_chatted_this_stream = False
            record.last_used = 0
        self.save()
        log.info(f"Stream day reset ({self._stream_date})")

    def reset(self) -> None:
        """Clear per-stream flags and cooldowns; counts are kept."""
        for record in self._visits.values():
            record.has_chatted_this_stream = False
            record.last_used = 0
        self.save()
        log.info("All user visit states reset")

    # ------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------

    def record(self, username: str) -> VisitRecord:
        return self._visits.setdefault(username.lower(), VisitRecord())

    def get(self, username: str) -> Optional[VisitRecord]:
        return self._visits.get(username.lower())

    def observe(self, message: ChatMessage) -> Optional[str]:
        """
        Count a visit for the viewer's first line this stream.

        Returns the chat greeting, or None when the viewer already chatted.
        """
        if self._stream_date != self._today():
            self.reset_stream_day()

        record = self.record(message.username)
        if record.has_chatted_this_stream:
            return None

        record.has_chatted_this_stream = True
        record.count += 1
        record.last_used = self._now_ms()
        self.save()

        milestone = record.count if record.count in self._milestones else None
        self._enqueue(message.author_id, message.display_name, message.color, record.count, milestone)

        if message.first_msg:
            return first_time_greeting(message.display_name)
        if milestone:
            return milestone_greeting(message.display_name, milestone)
        return welcome_back_greeting(message.display_name)

    def welcome(
        self,
        *,
        user_id: str,
        username: str,
        display_name: str,
        color: str = DEFAULT_COLOR,
    ) -> Optional[str]:
        """
        Welcome command check-in. Returns the reply, or None while the
        viewer's cooldown is running.
        """
        record = self.record(username)
        now = self._now_ms()
        elapsed = now - record.last_used
        if record.last_used and elapsed < self._cooldown_ms:
            hours_left = (self._cooldown_ms - elapsed) / 3_600_000
            log.debug(f"Welcome command on cooldown for {username} ({hours_left:.1f}h left)")
            return None

        record.count += 1
        record.last_used = now
        record.has_chatted_this_stream = True
        self.save()

        milestone = record.count if record.count in self._milestones else None
        self._enqueue(user_id, display_name, color, record.count, milestone)

        if record.count <= 1:
            return f"Welcome {display_name}!"
        return f"Welcome back {display_name}!"

    def _enqueue(
        self,
        subject_id: str,
        display_name: str,
        color: str,
        count: int,
        milestone: Optional[int],
    ) -> None:
        if self._queue is None:
            return
        self._queue.enqueue(
            Alert(
                subject_id=subject_id,
                display_name=display_name,
                color=color or DEFAULT_COLOR,
                visit_count=count,
                created_time=self._timers.now(),
                milestone=milestone,
            )
        )


__all__ = [
    "STREAM_DATE_KEY",
    "VISITS_KEY",
    "VisitRecord",
    "VisitTracker",
    "first_time_greeting",
    "milestone_greeting",
    "welcome_back_greeting",
]
