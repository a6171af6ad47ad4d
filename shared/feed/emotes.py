"""
Emote compositor.

Turns a raw chat body plus upstream emote ranges into an ordered list of
display fragments. Ranges are inclusive and expressed in UTF-16 code units,
matching what the chat server sends, so splicing happens on the UTF-16
encoding of the body rather than on Python code points.

Ranges are applied right-to-left in a single pass: splicing from the end of
the string keeps every not-yet-applied offset valid. Overlapping ranges are
trusted as-is: the leftmost range is spliced last and takes the overlapped
span, so the fragment to its right keeps only the units it still owns.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from shared.feed.models import EmotePosition
from shared.logging.logger import get_logger

log = get_logger("feed.emotes")

TWITCH_EMOTE_URL = "https://static-cdn.jtvnw.net/emoticons/v2/{id}/default/dark/3.0"

_UNIT = 2  # bytes per UTF-16 code unit
_WORD_SPLIT = re.compile(r"(\s+)")
_TRAILING_PUNCTUATION = re.compile(r"[.,!?;:]+$")


@dataclass(frozen=True)
class TextFragment:
    text: str

    kind = "text"

    def to_html(self) -> str:
        return html.escape(self.text, quote=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "text": self.text}


@dataclass(frozen=True)
class EmoteFragment:
    emote_id: str
    code: str
    url: str
    source: str = "twitch"

    kind = "emote"

    def to_html(self) -> str:
        return (
            f'<img class="emote" src="{html.escape(self.url)}" '
            f'alt="{html.escape(self.code)}" title="{html.escape(self.code)}" />'
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.emote_id,
            "code": self.code,
            "url": self.url,
            "source": self.source,
        }


def twitch_emote_url(emote_id: str) -> str:
    return TWITCH_EMOTE_URL.format(id=emote_id)


def _decode(units: bytes) -> str:
    # A range may split a surrogate pair when upstream data is off
    return units.decode("utf-16-le", errors="replace")


def _overwrite_front(tail: List[TextFragment | EmoteFragment], overlap: int) -> None:
    # tail runs right to left, so its last fragment is the leftmost one emitted
    while overlap > 0 and tail:
        fragment = tail[-1]
        text = fragment.text if isinstance(fragment, TextFragment) else fragment.code
        units = text.encode("utf-16-le")
        if len(units) <= overlap:
            tail.pop()
            overlap -= len(units)
            continue
        rest = _decode(units[overlap:])
        if isinstance(fragment, TextFragment):
            tail[-1] = TextFragment(rest)
        else:
            tail[-1] = replace(fragment, code=rest)
        overlap = 0


def composite(
    body_text: str,
    positions: Iterable[EmotePosition],
    *,
    url_for: Callable[[str], str] = twitch_emote_url,
) -> List[TextFragment | EmoteFragment]:
    """
    Splice emote ranges out of body_text, right to left.

    The result does not depend on the order of `positions`.
    """
    ordered = sorted(positions, key=lambda p: (p.start, p.end, p.id), reverse=True)
    units = body_text.encode("utf-16-le")
    remaining = units
    tail: List[TextFragment | EmoteFragment] = []

    for pos in ordered:
        start = pos.start * _UNIT
        end = min((pos.end + 1) * _UNIT, len(units))
        if pos.start < 0 or pos.end < pos.start or start >= len(remaining):
            log.debug(f"Emote range {pos.id}:{pos.start}-{pos.end} outside text; skipped")
            continue

        code = _decode(units[start:end])
        if end > len(remaining):
            _overwrite_front(tail, end - len(remaining))
        else:
            after = _decode(remaining[end:])
            if after:
                tail.append(TextFragment(after))
        tail.append(EmoteFragment(emote_id=pos.id, code=code, url=url_for(pos.id)))
        remaining = remaining[:start]

    fragments: List[TextFragment | EmoteFragment] = []
    head = _decode(remaining)
    if head:
        fragments.append(TextFragment(head))
    fragments.extend(reversed(tail))
    return fragments


def apply_word_emotes(
    fragments: Sequence[TextFragment | EmoteFragment],
    catalog: Mapping[str, str],
    *,
    source: str = "third_party",
) -> List[TextFragment | EmoteFragment]:
    """
    Replace whitespace-delimited words whose code is in `catalog` (code ->
    url) inside text fragments. Trailing punctuation stays as text.
    """
    if not catalog:
        return list(fragments)

    result: List[TextFragment | EmoteFragment] = []
    for fragment in fragments:
        if not isinstance(fragment, TextFragment):
            result.append(fragment)
            continue

        buffer = ""
        for part in _WORD_SPLIT.split(fragment.text):
            if not part or part.isspace():
                buffer += part
                continue

            word = _TRAILING_PUNCTUATION.sub("", part)
            punctuation = part[len(word):]
            url = catalog.get(word) if word else None
            if url is None:
                buffer += part
                continue

            if buffer:
                result.append(TextFragment(buffer))
                buffer = ""
            result.append(EmoteFragment(emote_id=word, code=word, url=url, source=source))
            buffer = punctuation

        if buffer:
            result.append(TextFragment(buffer))

    return result


def render_html(fragments: Iterable[TextFragment | EmoteFragment]) -> str:
    return "".join(fragment.to_html() for fragment in fragments)


def parse_emote_positions(raw: object) -> List[EmotePosition]:
    """
    Normalize the `emotes` tag into positions.

    Accepts the decoded map form ({"25": ["0-4", "6-10"]}) and the raw IRC
    form ("25:0-4,6-10/1902:12-16"). Malformed ranges are skipped.
    """
    if not raw:
        return []

    mapping: Mapping[str, object]
    if isinstance(raw, str):
        mapping = {}
        for group in raw.split("/"):
            emote_id, sep, ranges = group.partition(":")
            if sep and emote_id:
                mapping[emote_id] = ranges.split(",")
    elif isinstance(raw, Mapping):
        mapping = raw
    else:
        log.debug(f"Unsupported emotes tag type: {type(raw).__name__}")
        return []

    positions: List[EmotePosition] = []
    for emote_id, ranges in mapping.items():
        if isinstance(ranges, str):
            ranges = ranges.split(",")
        if not isinstance(ranges, (list, tuple)):
            continue
        for item in ranges:
            parsed = _parse_range(str(emote_id), item)
            if parsed:
                positions.append(parsed)
    return positions


def _parse_range(emote_id: str, item: object) -> Optional[EmotePosition]:
    if not isinstance(item, str) or "-" not in item:
        return None
    start_raw, _, end_raw = item.partition("-")
    try:
        start, end = int(start_raw), int(end_raw)
    except ValueError:
        log.debug(f"Malformed emote range '{item}' for {emote_id}; skipped")
        return None
    if start < 0 or end < start:
        return None
    return EmotePosition(id=emote_id, start=start, end=end)


__all__ = [
    "EmoteFragment",
    "TextFragment",
    "TWITCH_EMOTE_URL",
    "apply_word_emotes",
    "composite",
    "parse_emote_positions",
    "render_html",
    "twitch_emote_url",
]
