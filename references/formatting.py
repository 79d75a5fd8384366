"""
Marginalia - Reference Formatting

Canonical display forms for addresses and ranges. Every form produced here
parses back to the value it was made from.
"""
from __future__ import annotations

from typing import Iterable, Optional

from corpus.index import CorpusIndex
from domain.entities import AddressRange, CanonicalAddress

RANGE_SEPARATOR = "; "


def display(address: CanonicalAddress) -> str:
    """'John 3:16'"""
    return f"{address.book.display_name} {address.chapter}:{address.verse}"


def _is_whole_chapters(reference: AddressRange, corpus: CorpusIndex) -> bool:
    start, end = reference.start, reference.end
    if not (corpus.has_book(start.book) and corpus.verses(start.book, start.chapter)):
        return False
    if not corpus.verses(end.book, end.chapter):
        return False
    return (
        start.verse == corpus.first_verse(start.book, start.chapter)
        and end.verse == corpus.last_verse(end.book, end.chapter)
    )


def format_range(reference: AddressRange, corpus: Optional[CorpusIndex] = None) -> str:
    """
    Display form of a range.

    Examples:
        John 3:16        single verse
        John 3:16-18     verses within a chapter
        John 3:36-4:2    across chapters
        Psalms 23        whole chapter (needs ``corpus`` to know the bounds)
        Psalms 23-24     whole chapters
    """
    start, end = reference.start, reference.end
    name = start.book.display_name

    if corpus is not None and not reference.is_single and _is_whole_chapters(reference, corpus):
        if start.chapter == end.chapter:
            return f"{name} {start.chapter}"
        return f"{name} {start.chapter}-{end.chapter}"

    if reference.is_single:
        return display(start)
    if start.chapter == end.chapter:
        return f"{name} {start.chapter}:{start.verse}-{end.verse}"
    return f"{name} {start.chapter}:{start.verse}-{end.chapter}:{end.verse}"


def format_ranges(references: Iterable[AddressRange], corpus: Optional[CorpusIndex] = None) -> str:
    """Several ranges as one parseable string, each with its book spelled out."""
    return RANGE_SEPARATOR.join(format_range(reference, corpus) for reference in references)
