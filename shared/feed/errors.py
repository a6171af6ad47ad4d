"""Error kinds raised inside the feed pipeline.

None of these are allowed to escape the router or a deferred callback: they
are caught at the boundary of the event or operation that caused them,
logged, and reflected in the runtime status.
"""

from __future__ import annotations

from typing import Optional


class FeedError(Exception):
    """Base class for feed pipeline errors."""


class TransientFetchFailure(FeedError):
    """A catalog fetch or an outbound send failed. Never retried."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class MalformedEvent(FeedError):
    """An inbound event is missing a tag a feature depends on."""

    def __init__(self, message: str, *, tag: Optional[str] = None):
        super().__init__(message)
        self.tag = tag


class CapabilityUnsupported(FeedError):
    """A platform capability a subsystem requires is absent."""

    def __init__(self, subsystem: str, message: str):
        super().__init__(f"{subsystem}: {message}")
        self.subsystem = subsystem


__all__ = [
    "FeedError",
    "TransientFetchFailure",
    "MalformedEvent",
    "CapabilityUnsupported",
]
