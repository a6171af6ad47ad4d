import itertools

from shared.feed.emotes import (
    EmoteFragment,
    TextFragment,
    apply_word_emotes,
    composite,
    parse_emote_positions,
    render_html,
    twitch_emote_url,
)
from shared.feed.models import EmotePosition


def test_no_positions_yields_single_text_fragment() -> None:
    assert composite("hello world", []) == [TextFragment("hello world")]


def test_empty_body_yields_no_fragments() -> None:
    assert composite("", []) == []


def test_single_emote_splits_surrounding_text() -> None:
    fragments = composite("hi Kappa there", [EmotePosition(id="25", start=3, end=7)])

    assert fragments == [
        TextFragment("hi "),
        EmoteFragment(emote_id="25", code="Kappa", url=twitch_emote_url("25")),
        TextFragment(" there"),
    ]


def test_offsets_count_utf16_code_units() -> None:
    # The emoji occupies two UTF-16 code units (a surrogate pair)
    body = "😀 Kappa hi"
    fragments = composite(body, [EmotePosition(id="25", start=3, end=7)])

    assert fragments[0] == TextFragment("😀 ")
    assert fragments[1].code == "Kappa"
    assert fragments[2] == TextFragment(" hi")


def test_result_is_independent_of_position_order() -> None:
    body = "Kappa Keepo Kappa"
    positions = [
        EmotePosition(id="25", start=0, end=4),
        EmotePosition(id="1902", start=6, end=10),
        EmotePosition(id="25", start=12, end=16),
    ]
    expected = composite(body, positions)

    assert [f.kind for f in expected] == ["emote", "text", "emote", "text", "emote"]
    for permutation in itertools.permutations(positions):
        assert composite(body, list(permutation)) == expected


def test_adjacent_emotes_have_no_empty_text_between() -> None:
    fragments = composite(
        "KappaKeepo",
        [EmotePosition(id="25", start=0, end=4), EmotePosition(id="1902", start=5, end=9)],
    )

    assert [f.code for f in fragments] == ["Kappa", "Keepo"]


def test_overlapping_ranges_let_the_leftmost_emote_take_the_overlap() -> None:
    fragments = composite(
        "abcdefghij",
        [EmotePosition(id="A", start=0, end=5), EmotePosition(id="B", start=3, end=8)],
    )

    assert fragments == [
        EmoteFragment(emote_id="A", code="abcdef", url=twitch_emote_url("A")),
        EmoteFragment(emote_id="B", code="ghi", url=twitch_emote_url("B")),
        TextFragment("j"),
    ]


def test_enclosing_range_swallows_inner_emote_and_text() -> None:
    fragments = composite(
        "abcdefghij",
        [EmotePosition(id="inner", start=3, end=5), EmotePosition(id="outer", start=0, end=9)],
    )

    assert fragments == [
        EmoteFragment(emote_id="outer", code="abcdefghij", url=twitch_emote_url("outer")),
    ]


def test_out_of_range_position_is_skipped() -> None:
    fragments = composite("short", [EmotePosition(id="25", start=40, end=44)])

    assert fragments == [TextFragment("short")]


def test_custom_url_builder() -> None:
    fragments = composite(
        "Kappa",
        [EmotePosition(id="25", start=0, end=4)],
        url_for=lambda emote_id: f"https://cdn.test/{emote_id}",
    )

    assert fragments[0].url == "https://cdn.test/25"


def test_word_emotes_keep_trailing_punctuation_as_text() -> None:
    fragments = apply_word_emotes(
        [TextFragment("hello catJAM, world")],
        {"catJAM": "https://cdn.test/catjam"},
    )

    assert fragments == [
        TextFragment("hello "),
        EmoteFragment(
            emote_id="catJAM",
            code="catJAM",
            url="https://cdn.test/catjam",
            source="third_party",
        ),
        TextFragment(", world"),
    ]


def test_word_emotes_leave_existing_emote_fragments_alone() -> None:
    base = composite("Kappa catJAM", [EmotePosition(id="25", start=0, end=4)])
    fragments = apply_word_emotes(base, {"Kappa": "https://cdn.test/bttv-kappa", "catJAM": "u"})

    assert fragments[0].url == twitch_emote_url("25")
    assert fragments[-1].code == "catJAM"


def test_render_html_escapes_text() -> None:
    html = render_html(
        [
            TextFragment("<b>hi</b> "),
            EmoteFragment(emote_id="25", code="Kappa", url="https://cdn.test/25"),
        ]
    )

    assert html.startswith("&lt;b&gt;hi&lt;/b&gt; ")
    assert 'src="https://cdn.test/25"' in html
    assert 'alt="Kappa"' in html


def test_parse_emote_positions_from_irc_string() -> None:
    positions = parse_emote_positions("25:0-4,6-10/1902:12-16")

    assert positions == [
        EmotePosition(id="25", start=0, end=4),
        EmotePosition(id="25", start=6, end=10),
        EmotePosition(id="1902", start=12, end=16),
    ]


def test_parse_emote_positions_from_map_skips_malformed_ranges() -> None:
    positions = parse_emote_positions({"25": ["0-4", "x-y", "9-3"], "1902": "6-10"})

    assert positions == [
        EmotePosition(id="25", start=0, end=4),
        EmotePosition(id="1902", start=6, end=10),
    ]


def test_parse_emote_positions_empty_inputs() -> None:
    assert parse_emote_positions(None) == []
    assert parse_emote_positions("") == []
    assert parse_emote_positions(42) == []
