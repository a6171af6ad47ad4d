import pytest

from shared.feed.badges import (
    SCOPE_CHANNEL,
    SCOPE_GLOBAL,
    BadgeCatalogCache,
    legacy_badge_url,
)
from shared.feed.models import Badge


def _payload(set_id, versions):
    return {
        "data": [
            {
                "set_id": set_id,
                "versions": [
                    {
                        "id": version,
                        "image_url_1x": f"https://cdn.test/{set_id}/{version}/1",
                        "image_url_2x": f"https://cdn.test/{set_id}/{version}/2",
                        "image_url_4x": f"https://cdn.test/{set_id}/{version}/4",
                    }
                    for version in versions
                ],
            }
        ]
    }


def test_resolve_prefers_channel_scope_over_global() -> None:
    cache = BadgeCatalogCache()
    cache.load(SCOPE_GLOBAL, _payload("subscriber", ["0", "12"]))
    cache.load(
        SCOPE_CHANNEL,
        {
            "data": [
                {
                    "set_id": "subscriber",
                    "versions": [{"id": "12", "image_url_4x": "https://cdn.test/channel/sub12"}],
                }
            ]
        },
    )

    assert cache.resolve("subscriber", "12") == "https://cdn.test/channel/sub12"
    assert cache.resolve("subscriber", "0") == "https://cdn.test/subscriber/0/4"


def test_resolve_falls_back_to_legacy_url() -> None:
    cache = BadgeCatalogCache()

    assert cache.resolve("subscriber", "3") == legacy_badge_url("subscriber", "3")
    assert cache.resolve("subscriber", "3").endswith("/badges/v2/subscriber/3/3")


def test_legacy_url_pins_single_version_badges() -> None:
    assert legacy_badge_url("vip", "7").endswith("/badges/v2/vip/1/3")
    assert legacy_badge_url("moderator", "2").endswith("/badges/v2/moderator/1/3")


def test_resolve_all_keeps_badge_order() -> None:
    cache = BadgeCatalogCache()
    cache.load(SCOPE_GLOBAL, _payload("vip", ["1"]))

    resolved = cache.resolve_all([Badge("subscriber", "1"), Badge("vip", "1")])

    assert [badge_type for badge_type, _ in resolved] == ["subscriber", "vip"]
    assert resolved[0][1] == legacy_badge_url("subscriber", "1")
    assert resolved[1][1] == "https://cdn.test/vip/1/4"


def test_load_replaces_scope_and_counts_sets() -> None:
    cache = BadgeCatalogCache()

    assert cache.load(SCOPE_GLOBAL, _payload("vip", ["1"])) == 1
    assert cache.load(SCOPE_GLOBAL, _payload("turbo", ["1"])) == 1
    assert cache.lookup("vip", "1") is None
    assert cache.lookup("turbo", "1") is not None
    assert cache.set_count(SCOPE_GLOBAL) == 1


def test_malformed_payload_leaves_scope_unchanged() -> None:
    cache = BadgeCatalogCache()
    cache.load(SCOPE_GLOBAL, _payload("vip", ["1"]))

    assert cache.load(SCOPE_GLOBAL, {"unexpected": True}) == 0
    assert cache.lookup("vip", "1") is not None


def test_versions_without_images_are_ignored() -> None:
    cache = BadgeCatalogCache()
    cache.load(SCOPE_GLOBAL, {"data": [{"set_id": "vip", "versions": [{"id": "1"}]}]})

    assert cache.lookup("vip", "1") is None


def test_unknown_scope_is_rejected() -> None:
    with pytest.raises(ValueError):
        BadgeCatalogCache().load("creator", {"data": []})
