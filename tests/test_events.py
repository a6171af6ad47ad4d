import pytest

from shared.feed.errors import MalformedEvent
from shared.feed.events import (
    ChatMessageEvent,
    InboundEvent,
    ModerationCommand,
    PresenceUpdate,
    decode_event,
    derive_message_id,
    normalize_badges,
    tag_flag,
)
from shared.feed.models import Badge, EmotePosition


def _decode(payload, *, tick=1, triggers=()):
    return decode_event(payload, arrival_tick=tick, arrival_time=100.0, command_triggers=triggers)


def test_chat_message_is_decoded_with_derived_id() -> None:
    event = _decode(
        {
            "tags": {
                "username": "viewer",
                "display-name": "Viewer",
                "user-id": "42",
                "message-id": "abc",
                "color": "#00ff00",
                "emotes": {"25": ["6-10"]},
            },
            "body": "hello Kappa",
        }
    )

    assert isinstance(event, ChatMessageEvent)
    message = event.message
    assert message.id == "abc-42"
    assert message.author_id == "42"
    assert message.display_name == "Viewer"
    assert message.color == "#00ff00"
    assert message.emote_positions == [EmotePosition(id="25", start=6, end=10)]
    assert message.arrival_time == 100.0


def test_missing_message_id_falls_back_to_arrival_tick() -> None:
    event = _decode({"tags": {"username": "viewer"}, "body": "hi"}, tick=7)

    assert event.message.id == "7-viewer"
    assert event.message.color == "#ffffff"
    assert derive_message_id(None, "viewer", 7) == "7-viewer"


def test_raw_badges_win_over_badge_map() -> None:
    badges = normalize_badges(
        {"badges-raw": "subscriber/12,vip/1", "badges": {"vip": "1", "subscriber": "12"}}
    )

    assert badges == [Badge("subscriber", "12"), Badge("vip", "1")]


def test_badge_map_and_string_forms() -> None:
    assert normalize_badges({"badges": {"moderator": "1"}}) == [Badge("moderator", "1")]
    assert normalize_badges({"badges": "broadcaster/1"}) == [Badge("broadcaster", "1")]
    assert normalize_badges({}) == []


def test_role_flags_come_from_tags_or_badges() -> None:
    event = _decode(
        {
            "tags": {
                "username": "caster",
                "badges-raw": "broadcaster/1,subscriber/0",
                "mod": "0",
                "first-msg": "1",
            },
            "body": "hello",
        }
    )

    message = event.message
    assert message.is_broadcaster
    assert message.is_subscriber
    assert not message.is_mod
    assert event.first_msg
    assert not event.returning_chatter


@pytest.mark.parametrize(
    "value,expected",
    [(True, True), ("1", True), ("true", True), (1, True), ("0", False), (None, False), ("", False)],
)
def test_tag_flag(value, expected) -> None:
    assert tag_flag(value) is expected


def test_command_trigger_yields_moderation_command() -> None:
    event = _decode(
        {"tags": {"username": "mod", "mod": True}, "body": "!Reset now please"},
        triggers={"!reset"},
    )

    assert isinstance(event, ModerationCommand)
    assert event.trigger == "!reset"
    assert event.args == ["now", "please"]
    assert event.message.is_mod


def test_unknown_command_is_ordinary_chat() -> None:
    event = _decode({"tags": {"username": "viewer"}, "body": "!dance"}, triggers={"!reset"})

    assert isinstance(event, ChatMessageEvent)


def test_empty_body_is_presence_update() -> None:
    event = _decode({"tags": {"username": "lurker", "user-id": "9"}, "body": "   "})

    assert isinstance(event, PresenceUpdate)
    assert event.user_id == "9"
    assert event.display_name == "lurker"
    assert event.seen_at == 100.0


def test_missing_identity_is_malformed() -> None:
    with pytest.raises(MalformedEvent):
        _decode({"tags": {}, "body": "hi"})


@pytest.mark.parametrize(
    "payload",
    ["not a mapping", {"tags": ["x"], "body": "hi"}, {"tags": {}, "body": 42}],
)
def test_bad_payload_shapes_are_malformed(payload) -> None:
    with pytest.raises(MalformedEvent):
        InboundEvent.from_payload(payload)


def test_inbound_event_accepts_alternate_keys() -> None:
    event = InboundEvent.from_payload({"tags": {"username": "me"}, "message": "hi", "self": True})

    assert event.body == "hi"
    assert event.is_self
