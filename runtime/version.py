"""Runtime version metadata for StreamFeed.

Import-safe; exposes version identifiers for the runtime status snapshot,
the overlay API and the entrypoint banners.
"""

from __future__ import annotations

PROJECT = "streamfeed"
PROJECT_NAME = "StreamFeed Overlay Runtime"
VERSION = "v0.3.0-alpha"
BUILD = "2026.10"

__all__ = [
    "PROJECT",
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "as_dict",
    "as_string",
]


def as_dict() -> dict[str, str]:
    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
    }


def as_string() -> str:
    """Return a concise version string."""

    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"
