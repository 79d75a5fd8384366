"""
Marginalia - Safe Highlight Rendering

The search engine only emits (offset, length) spans. This module is the
reference implementation of the renderer side of that contract: text is
split into runs, and every run is HTML-escaped before any markup is added,
so neither verse text nor note text can inject markup.
"""
from __future__ import annotations

import html
import re
from typing import Iterable, List, Optional, Sequence, Tuple

Span = Tuple[int, int]
Segment = Tuple[str, bool]

_TAG_NAME = re.compile(r"^[a-z][a-z0-9-]*$")


def normalize_spans(spans: Iterable[Span], text_length: int) -> List[Span]:
    """
    Sort spans and fold overlapping or touching ones together.

    Raises:
        ValueError: a span has a negative offset, a non-positive length, or
            runs past the end of the text
    """
    ordered = sorted(spans)
    merged: List[List[int]] = []
    for offset, length in ordered:
        if offset < 0 or length <= 0 or offset + length > text_length:
            raise ValueError(f"Span ({offset}, {length}) does not fit text of length {text_length}")
        end = offset + length
        if merged and offset <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([offset, end])
    return [(start, end - start) for start, end in merged]


def segments(text: str, spans: Sequence[Span]) -> List[Segment]:
    """
    Split ``text`` into ``(run, is_match)`` pairs covering it exactly.

    Example:
        >>> segments("For God so loved", [(4, 3)])
        [('For ', False), ('God', True), (' so loved', False)]
    """
    runs: List[Segment] = []
    cursor = 0
    for offset, length in normalize_spans(spans, len(text)):
        if offset > cursor:
            runs.append((text[cursor:offset], False))
        runs.append((text[offset:offset + length], True))
        cursor = offset + length
    if cursor < len(text) or not runs:
        runs.append((text[cursor:], False))
    return runs


def render_highlighted(
    text: str,
    spans: Sequence[Span],
    tag: str = "mark",
    css_class: Optional[str] = None,
) -> str:
    """
    HTML for ``text`` with each span wrapped in ``<tag>``.

    Every run of text is escaped; only the wrapping tags are markup.
    """
    if not _TAG_NAME.match(tag):
        raise ValueError(f"Invalid tag name {tag!r}")
    opening = f"<{tag}>"
    if css_class:
        opening = f'<{tag} class="{html.escape(css_class, quote=True)}">'
    closing = f"</{tag}>"

    parts = []
    for run, is_match in segments(text, spans):
        escaped = html.escape(run, quote=True)
        parts.append(f"{opening}{escaped}{closing}" if is_match else escaped)
    return "".join(parts)
