"""
Bounded entity window.

A time-windowed, size-capped ordered collection of display entities, used
for chat messages (capacity + TTL) and presence chatters (capacity + sweep).

Invariants:
- len(window) <= capacity after every operation
- keys are unique within the window
- every removal path (evicted, expired, cleared) happens at most once per
  insertion; scheduled expiries re-check key and insertion generation
  before acting, so a stale callback is a no-op
"""

from __future__ import annotations

import itertools
from collections import OrderedDict
from enum import Enum
from typing import (
    Callable,
    Generic,
    Iterator,
    List,
    Optional,
    TypeVar,
)

from core.timers import TimerHandle, Timers
from shared.logging.logger import get_logger

log = get_logger("feed.window")

T = TypeVar("T")


class RemovalReason(Enum):
    EVICTED = "evicted"
    EXPIRED = "expired"
    CLEARED = "cleared"


class _Slot(Generic[T]):
    __slots__ = ("entity", "arrival_time", "generation", "timer")

    def __init__(self, entity: T, arrival_time: float, generation: int):
        self.entity = entity
        self.arrival_time = arrival_time
        self.generation = generation
        self.timer: Optional[TimerHandle] = None


RemoveCallback = Callable[[T, RemovalReason], None]


class BoundedEntityWindow(Generic[T]):
    """
    Ordered oldest -> newest. The window owns its entities until removal.

    `on_remove` is the render-removal side effect; it fires for evictions and
    TTL/sweep expiries, never for clear().
    """

    def __init__(
        self,
        *,
        name: str,
        capacity: int,
        key: Callable[[T], str],
        timers: Timers,
        ttl: Optional[float] = None,
        on_remove: Optional[RemoveCallback] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.name = name
        self.capacity = int(capacity)
        self.ttl = float(ttl) if ttl and ttl > 0 else None
        self._key = key
        self._timers = timers
        self._on_remove = on_remove
        self._slots: "OrderedDict[str, _Slot[T]]" = OrderedDict()
        self._generations = itertools.count(1)

    # ------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, key: object) -> bool:
        return key in self._slots

    def __iter__(self) -> Iterator[T]:
        return iter([slot.entity for slot in self._slots.values()])

    def get(self, key: str) -> Optional[T]:
        slot = self._slots.get(key)
        return slot.entity if slot else None

    def keys(self) -> List[str]:
        return list(self._slots.keys())

    def entities(self) -> List[T]:
        return [slot.entity for slot in self._slots.values()]

    # ------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------

    def insert(self, entity: T, *, arrival_time: Optional[float] = None) -> bool:
        """
        Append at the newest end and evict overflow from the oldest end.

        Returns False (and does nothing) when the key is already present.
        """
        key = self._key(entity)
        if key in self._slots:
            log.debug(f"[{self.name}] duplicate key ignored: {key}")
            return False

        arrival = self._timers.now() if arrival_time is None else float(arrival_time)
        slot = _Slot(entity, arrival, next(self._generations))
        self._slots[key] = slot
        self._schedule_expiry(key, slot)

        while len(self._slots) > self.capacity:
            oldest_key = next(iter(self._slots))
            self._remove(oldest_key, RemovalReason.EVICTED)

        return True

    def touch(
        self,
        key: str,
        update: Optional[Callable[[T], None]] = None,
        *,
        arrival_time: Optional[float] = None,
    ) -> bool:
        """
        Update a live entity in place and move it to the newest end.

        Any pending expiry is cancelled before a new one is scheduled.
        """
        slot = self._slots.get(key)
        if slot is None:
            return False

        if update is not None:
            update(slot.entity)

        self._timers.cancel(slot.timer)
        slot.timer = None
        slot.arrival_time = self._timers.now() if arrival_time is None else float(arrival_time)
        slot.generation = next(self._generations)
        self._slots.move_to_end(key)
        self._schedule_expiry(key, slot)
        return True

    def remove(self, key: str, reason: RemovalReason = RemovalReason.EXPIRED) -> Optional[T]:
        if key not in self._slots:
            return None
        return self._remove(key, reason)

    def remove_where(self, predicate: Callable[[T], bool]) -> List[T]:
        """
        Drop every entity for which predicate(entity) is True.

        Returns the removed entities (empty when nothing changed).
        """
        doomed = [k for k, slot in self._slots.items() if predicate(slot.entity)]
        removed = []
        for key in doomed:
            entity = self._remove(key, RemovalReason.EXPIRED)
            if entity is not None:
                removed.append(entity)
        if removed:
            log.debug(f"[{self.name}] swept {len(removed)} entit(ies)")
        return removed

    def clear(self) -> int:
        """Remove everything immediately without per-entity side effects."""
        count = len(self._slots)
        for key, slot in self._slots.items():
            self._timers.cancel(slot.timer)
            slot.timer = None
            log.debug(f"[{self.name}] {key} -> {RemovalReason.CLEARED.value}")
        self._slots.clear()
        return count

    # ------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------

    def _schedule_expiry(self, key: str, slot: _Slot[T]) -> None:
        if self.ttl is None:
            return

        generation = slot.generation
        slot.timer = self._timers.call_at(
            slot.arrival_time + self.ttl,
            lambda: self._expire(key, generation),
            label=f"{self.name}:expire:{key}",
        )

    def _expire(self, key: str, generation: int) -> None:
        slot = self._slots.get(key)
        if slot is None or slot.generation != generation:
            # Evicted, cleared or superseded since scheduling
            return
        slot.timer = None
        self._remove(key, RemovalReason.EXPIRED)

    def _remove(self, key: str, reason: RemovalReason) -> Optional[T]:
        slot = self._slots.pop(key, None)
        if slot is None:
            return None

        self._timers.cancel(slot.timer)
        slot.timer = None
        log.debug(f"[{self.name}] {key} -> {reason.value}")

        if self._on_remove is not None:
            try:
                self._on_remove(slot.entity, reason)
            except Exception as e:
                log.warning(f"[{self.name}] removal side effect failed for {key}: {e}")

        return slot.entity


__all__ = ["BoundedEntityWindow", "RemovalReason"]
