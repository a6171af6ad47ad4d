"""Display entities managed by the feed windows and the alert queue."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_COLOR = "#ffffff"


@dataclass(frozen=True)
class Badge:
    type: str
    version: str


@dataclass(frozen=True)
class EmotePosition:
    """Inline emote range; `end` is inclusive, offsets are UTF-16 code units."""

    id: str
    start: int
    end: int


@dataclass
class ChatMessage:
    id: str
    author_id: str
    username: str
    display_name: str
    color: str
    badges: List[Badge]
    emote_positions: List[EmotePosition]
    body_text: str
    arrival_time: float

    message_id: Optional[str] = None
    is_mod: bool = False
    is_subscriber: bool = False
    is_vip: bool = False
    is_broadcaster: bool = False
    first_msg: bool = False
    returning_chatter: bool = False

    @property
    def is_privileged(self) -> bool:
        return self.is_broadcaster or self.is_mod or self.is_vip


@dataclass
class Chatter:
    user_id: str
    username: str
    display_name: str
    color: str
    last_seen: float

    def to_record(self) -> Dict[str, Any]:
        # Persisted shape (timestamps in epoch milliseconds)
        return {
            "user_id": self.user_id,
            "user": self.username,
            "name": self.display_name,
            "color": self.color,
            "timestamp": int(self.last_seen * 1000),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["Chatter"]:
        if not isinstance(record, dict):
            return None
        username = record.get("user")
        if not username or not isinstance(username, str):
            return None
        try:
            last_seen = float(record.get("timestamp", 0)) / 1000.0
        except (TypeError, ValueError):
            return None
        return cls(
            user_id=str(record.get("user_id") or username),
            username=username,
            display_name=str(record.get("name") or username),
            color=str(record.get("color") or DEFAULT_COLOR),
            last_seen=last_seen,
        )


@dataclass
class Alert:
    subject_id: str
    display_name: str
    color: str
    visit_count: int
    created_time: float
    milestone: Optional[int] = None

    @property
    def message(self) -> str:
        if self.visit_count == 1:
            return "Welcome to the channel!"
        return f"has been here {self.visit_count} times"


@dataclass
class DisplayMessage:
    """A chat message after badge and emote resolution."""

    id: str
    author_id: str
    display_name: str
    color: str
    badge_urls: List[Tuple[str, str]]
    fragments: List[Any]
    html: str
    arrival_time: float
    show_user_info: bool = True

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["badge_urls"] = [
            {"type": badge_type, "url": url} for badge_type, url in self.badge_urls
        ]
        payload["fragments"] = [fragment.to_dict() for fragment in self.fragments]
        return payload


__all__ = [
    "Alert",
    "Badge",
    "ChatMessage",
    "Chatter",
    "DEFAULT_COLOR",
    "DisplayMessage",
    "EmotePosition",
]
