import asyncio

import httpx

from services.emotes.third_party import (
    ThirdPartyEmoteCatalog,
    parse_bttv_channel,
    parse_ffz,
    parse_seventv,
)

BTTV_GLOBAL = [{"id": "b1", "code": "catJAM"}, {"id": "b2", "code": "Clap"}]
FFZ_GLOBAL = {
    "sets": {"3": {"emoticons": [{"name": "LilZ", "urls": {"1": "//cdn.ffz.test/lilz/1"}}]}}
}
SEVENTV_CHANNEL = {"emote_set": {"emotes": [{"id": "s1", "name": "Clap"}]}}
BTTV_CHANNEL = {"channelEmotes": [{"id": "b3", "code": "ownEmote"}], "sharedEmotes": []}


def test_parsers_extract_code_to_url() -> None:
    assert parse_ffz(FFZ_GLOBAL) == {"LilZ": "https://cdn.ffz.test/lilz/1"}
    assert parse_seventv(SEVENTV_CHANNEL) == {"Clap": "https://cdn.7tv.app/emote/s1/4x.webp"}
    assert parse_bttv_channel(BTTV_CHANNEL) == {"ownEmote": "https://cdn.betterttv.net/emote/b3/3x"}
    assert parse_seventv({"unexpected": 1}) == {}


def test_load_merges_providers_with_channel_override() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        host, path = request.url.host, request.url.path
        if host == "api.betterttv.net" and path.endswith("/global"):
            return httpx.Response(200, json=BTTV_GLOBAL)
        if host == "api.betterttv.net":
            return httpx.Response(200, json=BTTV_CHANNEL)
        if host == "api.frankerfacez.com" and path.endswith("/global"):
            return httpx.Response(200, json=FFZ_GLOBAL)
        if host == "7tv.io":
            return httpx.Response(200, json=SEVENTV_CHANNEL)
        return httpx.Response(404)

    catalog = ThirdPartyEmoteCatalog(transport=httpx.MockTransport(handler))
    errors = asyncio.run(catalog.load("1001"))

    assert len(errors) == 1
    assert "ffz:channel" in errors[0]
    assert catalog.loaded
    assert catalog.url_for("catJAM") == "https://cdn.betterttv.net/emote/b1/3x"
    assert catalog.url_for("Clap") == "https://cdn.7tv.app/emote/s1/4x.webp"
    assert "ownEmote" in catalog
    assert "LilZ" in catalog


def test_load_without_channel_uses_global_sources_only() -> None:
    hosts = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(200, json=[] if "betterttv" in request.url.host else {"sets": {}})

    catalog = ThirdPartyEmoteCatalog(transport=httpx.MockTransport(handler))
    errors = asyncio.run(catalog.load(None))

    assert errors == []
    assert sorted(hosts) == ["api.betterttv.net", "api.frankerfacez.com"]
    assert len(catalog) == 0
