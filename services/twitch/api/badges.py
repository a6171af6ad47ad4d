import httpx
from typing import Any, Dict, List, Optional

from shared.feed.badges import SCOPE_CHANNEL, SCOPE_GLOBAL, BadgeCatalogCache
from shared.feed.errors import CapabilityUnsupported, TransientFetchFailure
from shared.logging.logger import get_logger

log = get_logger("twitch.api.badges")

HELIX_BASE_URL = "https://api.twitch.tv/helix"
GLOBAL_BADGES_PATH = "/chat/badges/global"
CHANNEL_BADGES_PATH = "/chat/badges"


class HelixBadgeClient:
    """
    Fetches chat badge catalogs from the Helix API.

    Requires an app/user token and the matching client id. A missing
    credential raises CapabilityUnsupported up front; HTTP and network
    failures raise TransientFetchFailure. Nothing here retries.
    """

    def __init__(
        self,
        *,
        client_id: Optional[str],
        token: Optional[str],
        base_url: str = HELIX_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = (client_id or "").strip()
        self.token = (token or "").strip()
        if self.token.lower().startswith("oauth:"):
            self.token = self.token.split(":", 1)[1]
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.token)

    # ------------------------------------------------------------------ #

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Client-Id": self.client_id,
            "Accept": "application/json",
        }

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        if not self.configured:
            raise CapabilityUnsupported(
                "badges", "TWITCH_CLIENT_ID and TWITCH_OAUTH_TOKEN are required for Helix"
            )

        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            try:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPStatusError as e:
                raise TransientFetchFailure(
                    "helix",
                    f"{path} -> {e.response.status_code} {e.response.reason_phrase}",
                ) from e
            except (httpx.HTTPError, ValueError) as e:
                raise TransientFetchFailure("helix", f"{path} -> {e}") from e

        if not isinstance(data, dict):
            raise TransientFetchFailure("helix", f"{path} returned a non-object payload")
        return data

    # ------------------------------------------------------------------ #

    async def fetch_global(self) -> Dict[str, Any]:
        return await self._get(GLOBAL_BADGES_PATH)

    async def fetch_channel(self, broadcaster_id: str) -> Dict[str, Any]:
        return await self._get(CHANNEL_BADGES_PATH, params={"broadcaster_id": broadcaster_id})

    async def populate(
        self,
        cache: BadgeCatalogCache,
        *,
        broadcaster_id: Optional[str] = None,
    ) -> List[str]:
        """
        Load global and (when an id is known) channel catalogs into cache.

        Fails open: a scope that cannot be fetched is logged and skipped,
        leaving the cache as it was. Returns error messages, empty on full
        success. CapabilityUnsupported propagates so the caller can disable
        the subsystem.
        """
        errors: List[str] = []

        jobs = [(SCOPE_GLOBAL, self.fetch_global, ())]
        if broadcaster_id:
            jobs.append((SCOPE_CHANNEL, self.fetch_channel, (broadcaster_id,)))
        else:
            log.info("No broadcaster id configured; channel badges will use global/legacy urls")

        for scope, fetch, args in jobs:
            try:
                payload = await fetch(*args)
            except TransientFetchFailure as e:
                log.warning(f"[{scope}] badge catalog fetch failed: {e}")
                errors.append(str(e))
                continue
            cache.load(scope, payload)

        return errors


__all__ = ["HelixBadgeClient", "HELIX_BASE_URL"]
