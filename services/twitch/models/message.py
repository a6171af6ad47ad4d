from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class TwitchChatMessage:
    """
    Parsed Twitch IRC line (PRIVMSG or JOIN).

    `tags` already carries the normalized shapes the feed consumes:
    `badges` as a type -> version map, `badges-raw` in server order,
    `emotes` as id -> ["start-end", ...] and boolean flags.
    """

    raw: str
    command: str
    username: str
    channel: str
    text: str

    tags: Dict[str, Any] = field(default_factory=dict)
    is_self: bool = False
    message_id: Optional[str] = None
    user_id: Optional[str] = None
    room_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_event(self) -> Dict[str, Any]:
        """Inbound event payload for the feed router."""
        tags = dict(self.tags)
        tags.setdefault("username", self.username)
        if self.message_id and "message-id" not in tags:
            tags["message-id"] = self.message_id

        return {
            "tags": tags,
            "body": self.text,
            "is_self": self.is_self,
        }
