from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from services.commands.actions import send_chat_action
from shared.feed.models import ChatMessage


@dataclass
class CommandContext:
    trigger: str
    args: List[str]
    message: ChatMessage
    channel: str = ""

    @property
    def username(self) -> str:
        return self.message.username

    @property
    def display_name(self) -> str:
        return self.message.display_name

    @property
    def is_broadcaster(self) -> bool:
        return self.message.is_broadcaster

    @property
    def is_mod(self) -> bool:
        return self.message.is_mod or self.message.is_broadcaster

    @property
    def is_subscriber(self) -> bool:
        return self.message.is_subscriber or self.message.is_broadcaster

    def reply(self, text: str) -> Dict[str, Any]:
        """Action descriptor sending `text` back to the originating channel."""
        return send_chat_action(text, channel=self.channel)


class Command(ABC):
    """
    Base class for chat commands.

    Commands are pure logic:
    - No I/O
    - No async
    - Side effects are expressed as action descriptors for ActionExecutor
    """

    def __init__(
        self,
        *,
        command_id: str,
        triggers: Sequence[str],
        mod_only: bool = False,
        broadcaster_only: bool = False,
        subscriber_only: bool = False,
        cooldown: float = 0.0,
        enabled: bool = True,
        description: str = "",
    ):
        self.command_id = command_id
        self.triggers = tuple(t.strip().lower() for t in triggers if t and t.strip())
        self.mod_only = mod_only
        self.broadcaster_only = broadcaster_only
        self.subscriber_only = subscriber_only
        self.cooldown = max(0.0, float(cooldown))
        self.enabled = enabled
        self.description = description

    def permitted(self, ctx: CommandContext) -> bool:
        if self.broadcaster_only and not ctx.is_broadcaster:
            return False
        if self.mod_only and not ctx.is_mod:
            return False
        if self.subscriber_only and not ctx.is_subscriber:
            return False
        return True

    @abstractmethod
    def build_actions(self, ctx: CommandContext) -> List[Dict[str, Any]]:
        """
        Return action descriptors for this invocation (may be empty).
        """
        raise NotImplementedError
