"""
Third-party emote catalogs (BTTV, FFZ, 7TV).

Builds a single code -> image url map used by the compositor for words that
are not covered by the upstream emote ranges. Every provider is optional:
a failed fetch is logged and the remaining providers still load.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from shared.feed.errors import TransientFetchFailure
from shared.logging.logger import get_logger

log = get_logger("emotes.third_party")

BTTV_GLOBAL_URL = "https://api.betterttv.net/3/cached/emotes/global"
BTTV_CHANNEL_URL = "https://api.betterttv.net/3/cached/users/twitch/{channel_id}"
BTTV_CDN_URL = "https://cdn.betterttv.net/emote/{id}/3x"

FFZ_GLOBAL_URL = "https://api.frankerfacez.com/v1/set/global"
FFZ_CHANNEL_URL = "https://api.frankerfacez.com/v1/room/id/{channel_id}"

SEVENTV_CHANNEL_URL = "https://7tv.io/v3/users/twitch/{channel_id}"
SEVENTV_CDN_URL = "https://cdn.7tv.app/emote/{id}/4x.webp"

Parser = Callable[[Any], Dict[str, str]]


# ------------------------------------------------------------------
# Payload parsers
# ------------------------------------------------------------------

def _bttv_entries(entries: Any) -> Dict[str, str]:
    emotes: Dict[str, str] = {}
    if not isinstance(entries, list):
        return emotes
    for emote in entries:
        if isinstance(emote, dict) and emote.get("code") and emote.get("id"):
            emotes[str(emote["code"])] = BTTV_CDN_URL.format(id=emote["id"])
    return emotes


def parse_bttv_global(payload: Any) -> Dict[str, str]:
    return _bttv_entries(payload)


def parse_bttv_channel(payload: Any) -> Dict[str, str]:
    if not isinstance(payload, dict):
        return {}
    emotes = _bttv_entries(payload.get("channelEmotes"))
    emotes.update(_bttv_entries(payload.get("sharedEmotes")))
    return emotes


def parse_ffz(payload: Any) -> Dict[str, str]:
    emotes: Dict[str, str] = {}
    sets = payload.get("sets") if isinstance(payload, dict) else None
    if not isinstance(sets, dict):
        return emotes

    for emote_set in sets.values():
        if not isinstance(emote_set, dict):
            continue
        for emote in emote_set.get("emoticons") or []:
            if not isinstance(emote, dict) or not emote.get("name"):
                continue
            urls = emote.get("urls") or {}
            url = urls.get("4") or urls.get("2") or urls.get("1")
            if not url:
                continue
            if url.startswith("//"):
                url = "https:" + url
            emotes[str(emote["name"])] = url
    return emotes


def parse_seventv(payload: Any) -> Dict[str, str]:
    if not isinstance(payload, dict):
        return {}
    emote_set = payload.get("emote_set") or (payload.get("user") or {}).get("emote_set")
    if not isinstance(emote_set, dict):
        return {}

    emotes: Dict[str, str] = {}
    for emote in emote_set.get("emotes") or []:
        if isinstance(emote, dict) and emote.get("name") and emote.get("id"):
            emotes[str(emote["name"])] = SEVENTV_CDN_URL.format(id=emote["id"])
    return emotes


# ------------------------------------------------------------------
# Catalog
# ------------------------------------------------------------------

class ThirdPartyEmoteCatalog:
    """
    code -> url map, loaded once per session.

    Merge order is global BTTV, global FFZ, then channel 7TV, BTTV and FFZ,
    so channel emotes override global ones with the same code.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._transport = transport
        self._emotes: Dict[str, str] = {}
        self.loaded = False

    def __len__(self) -> int:
        return len(self._emotes)

    def __contains__(self, code: object) -> bool:
        return code in self._emotes

    def url_for(self, code: str) -> Optional[str]:
        return self._emotes.get(code)

    def as_mapping(self) -> Dict[str, str]:
        return self._emotes

    # ------------------------------------------------------------------

    def _sources(self, channel_id: Optional[str]) -> List[Tuple[str, str, Parser]]:
        sources: List[Tuple[str, str, Parser]] = [
            ("bttv:global", BTTV_GLOBAL_URL, parse_bttv_global),
            ("ffz:global", FFZ_GLOBAL_URL, parse_ffz),
        ]
        if channel_id:
            sources += [
                ("7tv:channel", SEVENTV_CHANNEL_URL.format(channel_id=channel_id), parse_seventv),
                ("bttv:channel", BTTV_CHANNEL_URL.format(channel_id=channel_id), parse_bttv_channel),
                ("ffz:channel", FFZ_CHANNEL_URL.format(channel_id=channel_id), parse_ffz),
            ]
        return sources

    async def _fetch(self, client: httpx.AsyncClient, source: str, url: str) -> Any:
        try:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise TransientFetchFailure(source, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransientFetchFailure(source, str(e)) from e

    async def load(self, channel_id: Optional[str] = None) -> List[str]:
        """
        Fetch every provider concurrently and merge the results.

        Returns the error messages of providers that failed.
        """
        sources = self._sources(channel_id)
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._fetch(client, source, url) for source, url, _ in sources),
                return_exceptions=True,
            )

        merged: Dict[str, str] = {}
        errors: List[str] = []
        for (source, _, parser), result in zip(sources, results):
            if isinstance(result, TransientFetchFailure):
                log.warning(f"Emote provider unavailable: {result}")
                errors.append(str(result))
                continue
            if isinstance(result, BaseException):
                raise result
            emotes = parser(result)
            log.debug(f"[{source}] {len(emotes)} emotes")
            merged.update(emotes)

        self._emotes = merged
        self.loaded = True
        log.info(f"Third-party emotes loaded: {len(merged)} (failed providers: {len(errors)})")
        return errors


__all__ = [
    "ThirdPartyEmoteCatalog",
    "parse_bttv_channel",
    "parse_bttv_global",
    "parse_ffz",
    "parse_seventv",
]
