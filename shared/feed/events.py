"""
Inbound event decoding.

The chat client hands over loosely typed payloads ({tags, body, is_self}).
They are decoded exactly once, here, into one of three variants:

    ChatMessageEvent   ordinary chat line (first-time / returning flags kept)
    ModerationCommand  a line whose first word is a configured trigger
    PresenceUpdate     a sighting with no chat body (join, user state)

Everything past this module consumes the variants, never raw tags.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Union

from shared.feed.emotes import parse_emote_positions
from shared.feed.errors import MalformedEvent
from shared.feed.models import DEFAULT_COLOR, Badge, ChatMessage

_TRUE_VALUES = {"1", "true", "yes"}


@dataclass(frozen=True)
class InboundEvent:
    tags: Dict[str, Any] = field(default_factory=dict)
    body: str = ""
    is_self: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "InboundEvent":
        if isinstance(payload, InboundEvent):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedEvent(f"event payload must be a mapping, got {type(payload).__name__}")

        tags = payload.get("tags") or {}
        if not isinstance(tags, Mapping):
            raise MalformedEvent("event tags must be a mapping", tag="tags")

        body = payload.get("body")
        if body is None:
            body = payload.get("message", "")
        if not isinstance(body, str):
            raise MalformedEvent("event body must be a string", tag="body")

        is_self = payload.get("is_self", payload.get("isSelf", payload.get("self", False)))
        return cls(tags=dict(tags), body=body, is_self=bool(is_self))


@dataclass
class ChatMessageEvent:
    message: ChatMessage

    kind = "chat"

    @property
    def first_msg(self) -> bool:
        return self.message.first_msg

    @property
    def returning_chatter(self) -> bool:
        return self.message.returning_chatter


@dataclass
class ModerationCommand:
    trigger: str
    args: List[str]
    message: ChatMessage

    kind = "command"


@dataclass
class PresenceUpdate:
    user_id: str
    username: str
    display_name: str
    color: str
    seen_at: float

    kind = "presence"


FeedEvent = Union[ChatMessageEvent, ModerationCommand, PresenceUpdate]


# ------------------------------------------------------------
# Tag normalization
# ------------------------------------------------------------

def tag_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    return False


def _tag_str(tags: Mapping[str, Any], key: str) -> str:
    value = tags.get(key)
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def parse_badges_raw(raw: str) -> List[Badge]:
    """'subscriber/12,vip/1' -> [Badge(subscriber, 12), Badge(vip, 1)]"""
    badges: List[Badge] = []
    for pair in raw.split(","):
        badge_type, sep, version = pair.strip().partition("/")
        if badge_type and sep and version:
            badges.append(Badge(type=badge_type, version=version))
    return badges


def normalize_badges(tags: Mapping[str, Any]) -> List[Badge]:
    """
    Canonical ordered badge list from either encoding.

    `badges-raw` keeps the server's order and wins when both are present.
    """
    raw = tags.get("badges-raw")
    if isinstance(raw, str) and raw:
        return parse_badges_raw(raw)

    badges = tags.get("badges")
    if isinstance(badges, str):
        return parse_badges_raw(badges)
    if isinstance(badges, Mapping):
        return [
            Badge(type=str(badge_type), version=str(version))
            for badge_type, version in badges.items()
            if badge_type and version is not None
        ]
    return []


def derive_message_id(message_id: Optional[str], author_id: str, arrival_tick: int) -> str:
    return f"{message_id or arrival_tick}-{author_id}"


# ------------------------------------------------------------
# Decoding
# ------------------------------------------------------------

def decode_event(
    payload: Any,
    *,
    arrival_tick: int,
    arrival_time: float,
    command_triggers: Collection[str] = (),
) -> FeedEvent:
    """
    Decode one inbound payload into a feed event.

    Raises MalformedEvent when the author cannot be identified; optional tags
    that are missing or malformed only disable the feature that needs them.
    """
    event = InboundEvent.from_payload(payload)
    tags = event.tags

    username = _tag_str(tags, "username") or _tag_str(tags, "login")
    display_name = _tag_str(tags, "display-name") or username
    if not display_name:
        raise MalformedEvent("event has no username or display-name", tag="username")
    if not username:
        username = display_name.lower()

    author_id = _tag_str(tags, "user-id") or username
    color = _tag_str(tags, "color") or DEFAULT_COLOR

    body = event.body.strip()
    if not body:
        return PresenceUpdate(
            user_id=author_id,
            username=username,
            display_name=display_name,
            color=color,
            seen_at=arrival_time,
        )

    badges = normalize_badges(tags)
    badge_types = {badge.type for badge in badges}
    upstream_id = _tag_str(tags, "message-id") or _tag_str(tags, "id") or None

    message = ChatMessage(
        id=derive_message_id(upstream_id, author_id, arrival_tick),
        author_id=author_id,
        username=username,
        display_name=display_name,
        color=color,
        badges=badges,
        emote_positions=parse_emote_positions(tags.get("emotes")),
        body_text=event.body,
        arrival_time=arrival_time,
        message_id=upstream_id,
        is_mod=tag_flag(tags.get("mod")) or "moderator" in badge_types,
        is_subscriber=tag_flag(tags.get("subscriber")) or "subscriber" in badge_types,
        is_vip=tag_flag(tags.get("vip")) or "vip" in badge_types,
        is_broadcaster="broadcaster" in badge_types,
        first_msg=tag_flag(tags.get("first-msg")),
        returning_chatter=tag_flag(tags.get("returning-chatter")),
    )

    words = body.split()
    trigger = words[0].lower()
    if trigger in command_triggers:
        return ModerationCommand(trigger=trigger, args=words[1:], message=message)

    return ChatMessageEvent(message=message)


__all__ = [
    "ChatMessageEvent",
    "FeedEvent",
    "InboundEvent",
    "ModerationCommand",
    "PresenceUpdate",
    "decode_event",
    "derive_message_id",
    "normalize_badges",
    "parse_badges_raw",
    "tag_flag",
]
