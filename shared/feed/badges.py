"""
Badge catalog cache.

Holds the badge-set definitions fetched at session start and resolves a
(type, version) pair to an image url. Lookup order is channel scope, then
global scope, then the legacy CDN path rule, so resolve() always returns a
url even when no catalog could be fetched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shared.feed.models import Badge
from shared.logging.logger import get_logger

log = get_logger("feed.badges")

SCOPE_GLOBAL = "global"
SCOPE_CHANNEL = "channel"
SCOPES = (SCOPE_CHANNEL, SCOPE_GLOBAL)

LEGACY_BADGE_URL = "https://static-cdn.jtvnw.net/badges/v2/{badge_id}/3"

# Legacy badge sets that only ever shipped version 1
_FIXED_VERSION_TYPES = {
    "broadcaster",
    "moderator",
    "premium",
    "turbo",
    "glhf-pledge",
    "vip",
}


@dataclass(frozen=True)
class BadgeCatalogEntry:
    version_id: str
    image_url_low_res: str
    image_url_high_res: str


def legacy_badge_url(badge_type: str, version: str) -> str:
    if badge_type in _FIXED_VERSION_TYPES:
        badge_id = f"{badge_type}/1"
    else:
        badge_id = f"{badge_type}/{version}"
    return LEGACY_BADGE_URL.format(badge_id=badge_id)


class BadgeCatalogCache:
    """
    scope -> set_id -> version_id -> entry

    Populated once per session; never refreshed. Stale for the session's
    duration is accepted.
    """

    def __init__(self) -> None:
        self._scopes: Dict[str, Dict[str, Dict[str, BadgeCatalogEntry]]] = {
            SCOPE_CHANNEL: {},
            SCOPE_GLOBAL: {},
        }

    # ------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------

    def load(self, scope: str, payload: Any) -> int:
        """
        Ingest a catalog response for one scope, replacing that scope's
        previous contents. Returns the number of badge sets stored.

        Unknown scopes raise ValueError; a payload with an unexpected shape
        leaves the scope unchanged.
        """
        if scope not in self._scopes:
            raise ValueError(f"Unknown badge scope: {scope}")

        sets = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(sets, list):
            log.warning(f"[{scope}] badge payload has no data array; ignoring")
            return 0

        parsed: Dict[str, Dict[str, BadgeCatalogEntry]] = {}
        for badge_set in sets:
            if not isinstance(badge_set, dict):
                continue
            set_id = badge_set.get("set_id")
            versions = badge_set.get("versions")
            if not set_id or not isinstance(versions, list):
                continue

            entries: Dict[str, BadgeCatalogEntry] = {}
            for version in versions:
                entry = self._parse_version(version)
                if entry:
                    entries[entry.version_id] = entry
            parsed[str(set_id)] = entries

        self._scopes[scope] = parsed
        log.info(f"[{scope}] badge sets loaded: {len(parsed)}")
        return len(parsed)

    @staticmethod
    def _parse_version(version: Any) -> Optional[BadgeCatalogEntry]:
        if not isinstance(version, dict) or version.get("id") is None:
            return None

        low = version.get("image_url_1x") or version.get("image_url_2x")
        high = (
            version.get("image_url_4x")
            or version.get("image_url_2x")
            or version.get("image_url_1x")
        )
        if not high:
            return None

        return BadgeCatalogEntry(
            version_id=str(version["id"]),
            image_url_low_res=str(low or high),
            image_url_high_res=str(high),
        )

    # ------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------

    def lookup(self, badge_type: str, version: str) -> Optional[BadgeCatalogEntry]:
        for scope in SCOPES:
            badge_set = self._scopes[scope].get(badge_type)
            if badge_set is None:
                continue
            entry = badge_set.get(str(version))
            if entry is not None:
                return entry
        return None

    def resolve(self, badge_type: str, version: str) -> str:
        entry = self.lookup(badge_type, version)
        if entry is not None:
            return entry.image_url_high_res
        return legacy_badge_url(badge_type, str(version))

    def resolve_all(self, badges: Iterable[Badge]) -> List[Tuple[str, str]]:
        """Resolve badges in the order given, as (type, url) pairs."""
        return [(badge.type, self.resolve(badge.type, badge.version)) for badge in badges]

    def set_count(self, scope: str) -> int:
        return len(self._scopes.get(scope, {}))


__all__ = [
    "BadgeCatalogCache",
    "BadgeCatalogEntry",
    "LEGACY_BADGE_URL",
    "SCOPE_CHANNEL",
    "SCOPE_GLOBAL",
    "legacy_badge_url",
]
