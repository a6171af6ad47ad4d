from core.timers import ManualTimers
from services.feed.chat_feed import ChatFeed
from shared.config.widget import ChatSettings
from shared.feed.badges import BadgeCatalogCache
from shared.feed.models import ChatMessage, EmotePosition
from shared.feed.surface import SnapshotSurface


class StaticCatalog:
    def __init__(self, emotes):
        self._emotes = dict(emotes)

    def __len__(self):
        return len(self._emotes)

    def as_mapping(self):
        return self._emotes


def make_message(msg_id, body, *, author="ann", positions=(), at=0.0):
    return ChatMessage(
        id=msg_id,
        author_id=f"id-{author}",
        username=author,
        display_name=author.title(),
        color="#ffffff",
        badges=[],
        emote_positions=list(positions),
        body_text=body,
        arrival_time=at,
    )


def build_feed(timers, *, catalog=None, **settings):
    surface = SnapshotSurface()
    feed = ChatFeed(
        settings=ChatSettings(**settings),
        timers=timers,
        badges=BadgeCatalogCache(),
        surface=surface,
        emote_catalog=catalog,
    )
    return feed, surface


def test_window_capacity_is_mirrored_on_surface() -> None:
    timers = ManualTimers()
    feed, surface = build_feed(timers, max_messages=2)

    for i in range(3):
        feed.admit(make_message(f"m{i}", f"line {i}"))

    assert surface.message_ids() == ["m1", "m2"]
    assert len(feed) == 2


def test_message_ttl_removes_from_surface() -> None:
    timers = ManualTimers()
    feed, surface = build_feed(timers, message_ttl=10)

    feed.admit(make_message("m1", "hi", at=timers.now()))
    timers.advance(10)

    assert surface.message_ids() == []
    assert not feed.contains("m1")


def test_command_like_lines_are_hidden() -> None:
    timers = ManualTimers()
    feed, surface = build_feed(timers)

    assert feed.admit(make_message("m1", "!dance")) is None
    assert feed.admit(make_message("m2", "/me waves")) is None
    assert surface.message_ids() == []

    shown, _ = build_feed(timers, hide_command_like=False)
    assert shown.admit(make_message("m3", "!dance")) is not None


def test_consecutive_lines_from_same_author_are_grouped() -> None:
    timers = ManualTimers()
    feed, _ = build_feed(timers)

    first = feed.admit(make_message("m1", "one"))
    second = feed.admit(make_message("m2", "two"))
    third = feed.admit(make_message("m3", "three", author="ben"))

    assert first.show_user_info
    assert not second.show_user_info
    assert third.show_user_info


def test_render_applies_twitch_and_third_party_emotes() -> None:
    timers = ManualTimers()
    catalog = StaticCatalog({"catJAM": "https://cdn.test/catjam"})
    feed, _ = build_feed(timers, catalog=catalog)

    display = feed.admit(
        make_message("m1", "Kappa catJAM", positions=[EmotePosition(id="25", start=0, end=4)])
    )

    assert [f.kind for f in display.fragments] == ["emote", "text", "emote"]
    assert display.fragments[2].source == "third_party"
    assert display.html.count("<img") == 2


def test_clear_resets_surface_without_per_message_removal() -> None:
    timers = ManualTimers()
    feed, surface = build_feed(timers)
    feed.admit(make_message("m1", "hi"))
    version = surface.version

    assert feed.clear() == 1
    assert surface.message_ids() == []
    assert surface.version == version + 1


def test_redelivered_hidden_line_is_still_a_duplicate() -> None:
    timers = ManualTimers()
    feed, surface = build_feed(timers)

    assert feed.admit(make_message("m1", "!dance")) is None
    assert feed.contains("m1")
    assert feed.admit(make_message("m1", "!dance")) is None
    assert surface.message_ids() == []

    feed.clear()
    assert not feed.contains("m1")
