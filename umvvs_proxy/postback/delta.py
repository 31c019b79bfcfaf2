"""
Partial-postback delta codec.

An ASP.NET AJAX async postback answers with a run of records::

    length|type|id|content|

``length`` counts the characters of ``content`` in UTF-16 code units (the
client runtime measures JavaScript strings), so ``content`` may itself
contain ``|``. Segment types the proxy reads:

- ``#``: protocol version, first record
- ``updatePanel``: re-rendered HTML of one UpdatePanel (id = ClientID)
- ``hiddenField``: new value of a hidden input (id = input name)
- ``error``: server exception (id = HTTP status code)
- ``pageRedirect``: server-side redirect, usually an expired session
"""

import re
from dataclasses import dataclass, field
from urllib.parse import unquote

from ..core.errors import DeltaParseError
from ..core.models import PageState
from .hidden_fields import extract_hidden_fields


UPDATE_PANEL = "updatePanel"
HIDDEN_FIELD = "hiddenField"
ERROR = "error"
PAGE_REDIRECT = "pageRedirect"

# Type may be "#" (the leading "1|#||4|" version record)
_DELTA_SNIFF_RE = re.compile(r"^\s*\d+\|[^|<\r\n]+\|")


@dataclass(frozen=True)
class DeltaSegment:
    """One length-prefixed record of a delta payload."""
    type: str
    id: str
    content: str


@dataclass
class DeltaResponse:
    """Ordered segments of one async postback reply."""
    segments: list[DeltaSegment] = field(default_factory=list)

    def find(self, segment_type: str, segment_id: str | None = None) -> DeltaSegment | None:
        for segment in self.segments:
            if segment.type == segment_type and (segment_id is None or segment.id == segment_id):
                return segment
        return None

    def of_type(self, segment_type: str) -> list[DeltaSegment]:
        return [s for s in self.segments if s.type == segment_type]

    def update_panels(self) -> dict[str, str]:
        """UpdatePanel ClientID → re-rendered HTML."""
        return {s.id: s.content for s in self.of_type(UPDATE_PANEL)}

    def hidden_fields(self) -> dict[str, str]:
        """Hidden input name → new value."""
        return {s.id: s.content for s in self.of_type(HIDDEN_FIELD)}

    def error(self) -> tuple[str, str] | None:
        """(status code, message) of an ``error`` segment, if present."""
        segment = self.find(ERROR)
        if segment is None:
            return None
        return segment.id, segment.content

    def redirect(self) -> str | None:
        segment = self.find(PAGE_REDIRECT)
        if segment is None:
            return None
        return unquote(segment.content)

    def panel_html(self) -> str:
        """All update panels concatenated, for option lookups by control."""
        return "\n".join(self.update_panels().values())


def is_delta(text: str) -> bool:
    """Cheap check that a body looks like a delta rather than HTML."""
    return bool(_DELTA_SNIFF_RE.match(text or ""))


def utf16_len(text: str) -> int:
    """Length of ``text`` as the ASP.NET AJAX runtime counts it."""
    return len(text) + sum(1 for ch in text if ord(ch) > 0xFFFF)


def _take_utf16(text: str, start: int, units: int) -> int:
    """
    Index in ``text`` reached after ``units`` UTF-16 code units from ``start``.

    Returns -1 when the text ends first.
    """
    fast_end = start + units
    chunk = text[start:fast_end]
    if len(chunk) == units and chunk.isascii():
        return fast_end

    index = start
    remaining = units
    while remaining > 0:
        if index >= len(text):
            return -1
        remaining -= 2 if ord(text[index]) > 0xFFFF else 1
        index += 1
    if remaining < 0:
        return -1
    return index


def parse_delta(text: str) -> DeltaResponse:
    """
    Decode a delta payload, honouring declared lengths.

    Args:
        text: Raw response body

    Returns:
        DeltaResponse with segments in wire order

    Raises:
        DeltaParseError: On a non-numeric length, a missing delimiter, or a
            length running past the end of the payload
    """
    response = DeltaResponse()
    pos = 0
    end = len(text)
    # Some proxies add a trailing newline
    while end > 0 and text[end - 1] in "\r\n":
        end -= 1

    while pos < end:
        bar = text.find("|", pos, end)
        if bar < 0:
            raise DeltaParseError("Missing length delimiter", pos)
        raw_length = text[pos:bar].strip()
        # str.isdigit also accepts superscripts and other non-ASCII digits
        if not (raw_length.isascii() and raw_length.isdigit()):
            raise DeltaParseError(f"Invalid segment length {raw_length[:20]!r}", pos)
        length = int(raw_length)
        pos = bar + 1

        bar = text.find("|", pos, end)
        if bar < 0:
            raise DeltaParseError("Missing type delimiter", pos)
        segment_type = text[pos:bar]
        pos = bar + 1

        bar = text.find("|", pos, end)
        if bar < 0:
            raise DeltaParseError("Missing id delimiter", pos)
        segment_id = text[pos:bar]
        pos = bar + 1

        content_end = _take_utf16(text, pos, length)
        if content_end < 0 or content_end > end:
            raise DeltaParseError(
                f"Segment {segment_type}|{segment_id} declares {length} chars past end of payload",
                pos,
            )
        if content_end >= end or text[content_end] != "|":
            raise DeltaParseError(
                f"Segment {segment_type}|{segment_id} content not terminated by '|'",
                content_end,
            )
        response.segments.append(
            DeltaSegment(type=segment_type, id=segment_id, content=text[pos:content_end])
        )
        pos = content_end + 1

    return response


def encode_delta(segments: list[DeltaSegment] | list[tuple[str, str, str]]) -> str:
    """Inverse of :func:`parse_delta`."""
    parts = []
    for segment in segments:
        if isinstance(segment, DeltaSegment):
            segment_type, segment_id, content = segment.type, segment.id, segment.content
        else:
            segment_type, segment_id, content = segment
        parts.append(f"{utf16_len(content)}|{segment_type}|{segment_id}|{content}|")
    return "".join(parts)


def apply_to_state(
    delta: DeltaResponse,
    state: PageState,
    cookies: dict[str, str] | None = None,
    selections: dict[str, str] | None = None,
) -> PageState:
    """
    Fold a delta's hidden-field updates into a new PageState.

    Hidden inputs rendered inside update panels are picked up as well, since
    some pages place their anti-forgery token inside the panel.
    """
    updates: dict[str, str] = {}
    for html in delta.update_panels().values():
        updates.update(extract_hidden_fields(html))
    updates.update(delta.hidden_fields())
    return state.with_updates(updates, cookies=cookies, selections=selections)
