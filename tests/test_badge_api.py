import asyncio

import httpx
import pytest

from services.twitch.api.badges import HelixBadgeClient
from shared.feed.badges import BadgeCatalogCache, legacy_badge_url
from shared.feed.errors import CapabilityUnsupported, TransientFetchFailure


def _catalog(set_id, url):
    return {"data": [{"set_id": set_id, "versions": [{"id": "1", "image_url_4x": url}]}]}


def build_client(handler, **kwargs):
    kwargs.setdefault("client_id", "cid")
    kwargs.setdefault("token", "oauth:secret")
    return HelixBadgeClient(transport=httpx.MockTransport(handler), **kwargs)


def test_populate_loads_global_and_channel_scopes() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/chat/badges/global"):
            return httpx.Response(200, json=_catalog("vip", "https://cdn.test/global-vip"))
        return httpx.Response(200, json=_catalog("subscriber", "https://cdn.test/channel-sub"))

    cache = BadgeCatalogCache()
    errors = asyncio.run(build_client(handler).populate(cache, broadcaster_id="1001"))

    assert errors == []
    assert cache.resolve("vip", "1") == "https://cdn.test/global-vip"
    assert cache.resolve("subscriber", "1") == "https://cdn.test/channel-sub"

    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[0].headers["Client-Id"] == "cid"
    assert seen[1].url.params["broadcaster_id"] == "1001"


def test_failed_scope_is_reported_and_skipped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/global"):
            return httpx.Response(503)
        return httpx.Response(200, json=_catalog("subscriber", "https://cdn.test/channel-sub"))

    cache = BadgeCatalogCache()
    errors = asyncio.run(build_client(handler).populate(cache, broadcaster_id="1001"))

    assert len(errors) == 1
    assert "503" in errors[0]
    assert cache.resolve("subscriber", "1") == "https://cdn.test/channel-sub"
    assert cache.resolve("vip", "1") == legacy_badge_url("vip", "1")


def test_without_broadcaster_id_only_global_is_fetched() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"data": []})

    asyncio.run(build_client(handler).populate(BadgeCatalogCache()))

    assert paths == ["/helix/chat/badges/global"]


def test_network_error_becomes_transient_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(TransientFetchFailure):
        asyncio.run(build_client(handler).fetch_global())


def test_missing_credentials_are_unsupported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = build_client(handler, client_id=None)

    assert not client.configured
    with pytest.raises(CapabilityUnsupported):
        asyncio.run(client.populate(BadgeCatalogCache()))
