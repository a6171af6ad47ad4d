"""
Event router.

Entry point for every inbound chat-protocol event. Drops self-authored
events, decodes the rest once into a feed event, deduplicates and dispatches:

    ChatMessageEvent   -> chat feed, presence, visit counter (+ greeting)
    ModerationCommand  -> command window (dedup), presence, command registry
    PresenceUpdate     -> presence

Errors stay local to the event that caused them.
"""

from __future__ import annotations

import itertools
from typing import Any, Collection, Optional

from core.state_exporter import RuntimeStatus
from core.timers import Timers
from services.alerts.visits import VisitTracker
from services.commands.actions import ActionExecutor, send_chat_action
from services.commands.registry import CommandRegistry
from services.feed.chat_feed import ChatFeed
from services.presence.tracker import PresenceTracker
from shared.config.widget import CommandSettings
from shared.feed.errors import MalformedEvent
from shared.feed.events import (
    ChatMessageEvent,
    FeedEvent,
    InboundEvent,
    ModerationCommand,
    PresenceUpdate,
    decode_event,
)
from shared.feed.models import ChatMessage
from shared.feed.window import BoundedEntityWindow
from shared.logging.logger import get_logger

log = get_logger("feed.router")


class EventRouter:
    def __init__(
        self,
        *,
        timers: Timers,
        status: RuntimeStatus,
        chat_feed: ChatFeed,
        commands: CommandRegistry,
        executor: ActionExecutor,
        command_settings: CommandSettings,
        presence: Optional[PresenceTracker] = None,
        visits: Optional[VisitTracker] = None,
        channel: str = "",
        greet_in_chat: bool = True,
    ):
        self._timers = timers
        self._status = status
        self._chat_feed = chat_feed
        self._commands = commands
        self._executor = executor
        self._presence = presence
        self._visits = visits
        self._channel = channel
        self._greet_in_chat = greet_in_chat
        self._commands_enabled = command_settings.enabled
        self._welcome_triggers: Collection[str] = frozenset(command_settings.welcome_commands)
        self._ticks = itertools.count(1)

        self.command_window: BoundedEntityWindow[ModerationCommand] = BoundedEntityWindow(
            name="commands",
            capacity=command_settings.dedup_capacity,
            ttl=command_settings.dedup_window_seconds,
            key=lambda c: c.message.id,
            timers=timers,
        )

    # ------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------

    async def on_event(self, payload: Any) -> Optional[FeedEvent]:
        """
        Route one inbound event. Never raises; returns the decoded event
        when it was accepted, None when it was dropped.
        """
        self._status.increment("events")

        try:
            inbound = InboundEvent.from_payload(payload)
            if inbound.is_self:
                self._status.increment("self_dropped")
                return None

            event = decode_event(
                inbound,
                arrival_tick=next(self._ticks),
                arrival_time=self._timers.now(),
                command_triggers=self._commands.triggers if self._commands_enabled else (),
            )
        except MalformedEvent as e:
            self._status.increment("malformed")
            self._status.record_error("chat", str(e), kind="MalformedEvent")
            log.warning(f"Malformed event skipped: {e}")
            return None

        try:
            if isinstance(event, ChatMessageEvent):
                accepted = await self._on_chat(event)
            elif isinstance(event, ModerationCommand):
                accepted = await self._on_command(event)
            else:
                accepted = self._on_presence(event)
        except Exception as e:
            self._status.record_error("chat", str(e), kind=type(e).__name__)
            log.exception(f"Event handling failed ({event.kind}): {e}")
            return None

        return event if accepted else None

    # ------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------

    async def _on_chat(self, event: ChatMessageEvent) -> bool:
        message = event.message
        if self._chat_feed.contains(message.id):
            self._status.increment("duplicates")
            log.debug(f"Duplicate message dropped: {message.id}")
            return False

        self._status.increment("messages")
        self._chat_feed.admit(message)
        self._sighting(message)
        await self._count_visit(message)
        return True

    async def _on_command(self, event: ModerationCommand) -> bool:
        if not self.command_window.insert(event, arrival_time=event.message.arrival_time):
            self._status.increment("duplicates")
            log.debug(f"Duplicate command dropped: {event.message.id}")
            return False

        self._status.increment("commands")
        self._sighting(event.message)
        if event.trigger not in self._welcome_triggers:
            await self._count_visit(event.message)

        actions = self._commands.process(event, channel=self._channel)
        if actions:
            await self._executor.execute(actions)
        return True

    def _on_presence(self, event: PresenceUpdate) -> bool:
        self._status.increment("presence_updates")
        if self._presence is None:
            return False
        self._presence.observe(
            user_id=event.user_id,
            username=event.username,
            display_name=event.display_name,
            color=event.color,
            seen_at=event.seen_at,
        )
        return True

    # ------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------

    def _sighting(self, message: ChatMessage) -> None:
        if self._presence is None:
            return
        self._presence.observe(
            user_id=message.author_id,
            username=message.username,
            display_name=message.display_name,
            color=message.color,
            seen_at=message.arrival_time,
        )

    async def _count_visit(self, message: ChatMessage) -> None:
        if self._visits is None:
            return
        greeting = self._visits.observe(message)
        if greeting is None:
            return
        self._status.increment("alerts_queued")
        if self._greet_in_chat:
            await self._executor.execute([send_chat_action(greeting, channel=self._channel)])


__all__ = ["EventRouter"]
