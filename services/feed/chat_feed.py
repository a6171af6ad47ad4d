"""
Chat message feed.

Owns the chat-message window: admits decoded messages, renders them (badge
urls, emote fragments, html) and mirrors insertions and removals onto the
display surface.
"""

from __future__ import annotations

from typing import List, Optional

from core.timers import Timers
from services.emotes.third_party import ThirdPartyEmoteCatalog
from shared.config.widget import ChatSettings
from shared.feed.badges import BadgeCatalogCache
from shared.feed.emotes import apply_word_emotes, composite, render_html
from shared.feed.models import ChatMessage, DisplayMessage
from shared.feed.surface import OverlaySurface
from shared.feed.window import BoundedEntityWindow, RemovalReason
from shared.logging.logger import get_logger

log = get_logger("feed.chat")

COMMAND_PREFIXES = ("!", "/")


class ChatFeed:
    def __init__(
        self,
        *,
        settings: ChatSettings,
        timers: Timers,
        badges: BadgeCatalogCache,
        surface: OverlaySurface,
        emote_catalog: Optional[ThirdPartyEmoteCatalog] = None,
    ):
        self._settings = settings
        self._badges = badges
        self._surface = surface
        self._emote_catalog = emote_catalog
        self._last_author: Optional[str] = None

        self.window: BoundedEntityWindow[DisplayMessage] = BoundedEntityWindow(
            name="chat",
            capacity=settings.max_messages,
            ttl=settings.message_ttl or None,
            key=lambda m: m.id,
            timers=timers,
            on_remove=self._on_remove,
        )
        # Ids of hidden command-like lines, so redeliveries still dedupe
        self._hidden: BoundedEntityWindow[str] = BoundedEntityWindow(
            name="chat:hidden",
            capacity=settings.max_messages,
            ttl=settings.message_ttl or None,
            key=lambda message_id: message_id,
            timers=timers,
        )

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.window)

    def contains(self, message_id: str) -> bool:
        return message_id in self.window or message_id in self._hidden

    def messages(self) -> List[DisplayMessage]:
        return self.window.entities()

    @staticmethod
    def looks_like_command(body_text: str) -> bool:
        return body_text.lstrip().startswith(COMMAND_PREFIXES)

    # ------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------

    def admit(self, message: ChatMessage) -> Optional[DisplayMessage]:
        """
        Render and insert a message. Returns None when it is a duplicate or
        hidden by the command-like filter.
        """
        if message.id in self.window or message.id in self._hidden:
            log.debug(f"Duplicate chat message dropped: {message.id}")
            return None

        if self._settings.hide_command_like and self.looks_like_command(message.body_text):
            log.debug(f"Command-like message hidden: {message.display_name}: {message.body_text}")
            self._hidden.insert(message.id, arrival_time=message.arrival_time)
            return None

        display = self.render(message)
        if not self.window.insert(display, arrival_time=message.arrival_time):
            return None

        self._last_author = message.author_id
        self._surface.add_message(display)
        return display

    def render(self, message: ChatMessage) -> DisplayMessage:
        fragments = composite(message.body_text, message.emote_positions)
        catalog = self._emote_catalog
        if self._settings.third_party_emotes and catalog is not None and len(catalog):
            fragments = apply_word_emotes(fragments, catalog.as_mapping())

        show_user_info = not (
            self._settings.group_consecutive and self._last_author == message.author_id
        )

        return DisplayMessage(
            id=message.id,
            author_id=message.author_id,
            display_name=message.display_name,
            color=message.color,
            badge_urls=self._badges.resolve_all(message.badges),
            fragments=fragments,
            html=render_html(fragments),
            arrival_time=message.arrival_time,
            show_user_info=show_user_info,
        )

    # ------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------

    def clear(self) -> int:
        count = self.window.clear()
        self._hidden.clear()
        self._last_author = None
        self._surface.clear_messages()
        log.info(f"Chat feed cleared ({count} message(s))")
        return count

    def _on_remove(self, message: DisplayMessage, reason: RemovalReason) -> None:
        self._surface.remove_message(message.id)
        if not self.window.keys():
            self._last_author = None


__all__ = ["ChatFeed", "COMMAND_PREFIXES"]
