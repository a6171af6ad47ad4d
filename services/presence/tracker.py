"""
Presence tracker ("recent chatters").

Keeps the last few distinct chatters visible. A repeat sighting refreshes a
chatter in place and moves it to the newest end; a periodic sweep drops
chatters not seen within the timeout. The list is persisted so a reloaded
overlay shows the same chatters.
"""

from __future__ import annotations

from typing import List, Optional

from core.timers import TimerHandle, Timers
from shared.config.widget import CHATTER_MODES, PresenceSettings
from shared.feed.models import DEFAULT_COLOR, Chatter
from shared.feed.surface import OverlaySurface
from shared.feed.window import BoundedEntityWindow, RemovalReason
from shared.logging.logger import get_logger
from shared.storage.kv_store import KeyValueStore

log = get_logger("presence.tracker")

CHATTERS_KEY = "chatters"
MODE_KEY = "chatter_mode"


class PresenceTracker:
    def __init__(
        self,
        *,
        settings: PresenceSettings,
        timers: Timers,
        store: KeyValueStore,
        surface: OverlaySurface,
    ):
        self._settings = settings
        self._timers = timers
        self._store = store
        self._surface = surface
        self._sweep_handle: Optional[TimerHandle] = None
        self._mode = settings.default_mode

        self.window: BoundedEntityWindow[Chatter] = BoundedEntityWindow(
            name="presence",
            capacity=settings.max_chatters,
            key=lambda c: c.user_id,
            timers=timers,
            on_remove=self._on_remove,
        )

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def load(self) -> int:
        """Seed the window from persisted state, skipping stale chatters."""
        mode = self._store.get(MODE_KEY)
        if mode in CHATTER_MODES:
            self._mode = mode

        records = self._store.get(CHATTERS_KEY, [])
        if not isinstance(records, list):
            log.warning("Persisted chatters are not a list; ignoring")
            records = []

        now = self._timers.now()
        chatters = [c for c in (Chatter.from_record(r) for r in records) if c is not None]
        chatters = [c for c in chatters if self._alive(c, now)]
        chatters.sort(key=lambda c: c.last_seen)

        for chatter in chatters:
            self.window.insert(chatter, arrival_time=chatter.last_seen)

        log.info(f"Presence restored: {len(self.window)} chatter(s), mode={self._mode}")
        self._render()
        return len(self.window)

    def start(self) -> None:
        if self._sweep_handle is not None:
            return
        self._sweep_handle = self._timers.call_every(
            self._settings.sweep_interval, self.sweep, label="presence:sweep"
        )

    def stop(self) -> None:
        self._timers.cancel(self._sweep_handle)
        self._sweep_handle = None

    # ------------------------------------------------------------
    # Sightings
    # ------------------------------------------------------------

    def observe(
        self,
        *,
        user_id: str,
        username: str,
        display_name: str,
        color: str,
        seen_at: Optional[float] = None,
    ) -> Chatter:
        seen_at = self._timers.now() if seen_at is None else seen_at
        color = color or DEFAULT_COLOR

        def _refresh(chatter: Chatter) -> None:
            chatter.last_seen = seen_at
            chatter.display_name = display_name or chatter.display_name
            chatter.color = color

        if self.window.touch(user_id, _refresh, arrival_time=seen_at):
            self.persist()
            self._render()
            return self.window.get(user_id)

        chatter = Chatter(
            user_id=user_id,
            username=username,
            display_name=display_name or username,
            color=color,
            last_seen=seen_at,
        )
        self.window.insert(chatter, arrival_time=seen_at)
        log.debug(f"New chatter: {chatter.display_name}")
        self.persist()
        self._render()
        return chatter

    # ------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------

    def _alive(self, chatter: Chatter, now: float) -> bool:
        return now - chatter.last_seen < self._settings.timeout_seconds

    def sweep(self) -> List[Chatter]:
        now = self._timers.now()
        removed = self.window.remove_where(lambda c: not self._alive(c, now))
        if removed:
            log.debug(f"Sweep removed {len(removed)} chatter(s)")
            self.persist()
            self._render()
        return removed

    # ------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------

    def clear(self) -> None:
        self.window.clear()
        self.persist()
        self._render()

    @property
    def mode(self) -> str:
        return self._mode

    def set_mode(self, mode: str) -> bool:
        if mode not in CHATTER_MODES:
            log.warning(f"Unknown chatter mode: {mode}")
            return False
        self._mode = mode
        self._store.set(MODE_KEY, mode)
        self._render()
        return True

    def chatters(self) -> List[Chatter]:
        """Most recent first."""
        return list(reversed(self.window.entities()))

    def persist(self) -> None:
        self._store.set(CHATTERS_KEY, [c.to_record() for c in self.chatters()])

    # ------------------------------------------------------------

    def _on_remove(self, chatter: Chatter, reason: RemovalReason) -> None:
        log.debug(f"Chatter {chatter.display_name} {reason.value}")

    def _render(self) -> None:
        self._surface.set_chatters(self.chatters(), self._mode)


__all__ = ["PresenceTracker", "CHATTERS_KEY", "MODE_KEY"]
