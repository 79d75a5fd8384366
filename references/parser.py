"""
Marginalia - Reference Parser

Turns free-form reference text into validated address ranges.

Grammar:
    input        := reference ( ';' reference )*
    reference    := [book] location        book may be omitted after the first
    location     := chapter_part ( ',' item )*
    chapter_part := CH | CH-CH | CH:V | CH:V-V | CH:V-CH:V
    item         := V | V-V | CH:V | CH:V-V | CH:V-CH:V

Inside a location, bare numbers after a chapter-only part are chapters;
after a CH:V part they are verses of the most recent chapter.

Parsing is atomic: any invalid sub-reference fails the whole input and
nothing is returned. Output keeps input order, duplicates included.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from core.errors import (
    EmptyInputError,
    MalformedRangeError,
    ReferenceParseError,
)
from corpus.index import CorpusIndex
from domain.canon import BookId
from domain.entities import AddressRange, CanonicalAddress
from observability.logging import get_logger
from references.formatting import format_ranges

logger = get_logger(__name__)

_DASHES = re.compile(r"[\u2010-\u2015\u2212]")

_BOOK_AND_LOCATION = re.compile(
    r"""
    ^\s*
    (?P<book>(?:[1-3]\s*)?[^\W\d_][^\d]*?)?   # optional book, must contain a letter
    \s*
    (?P<location>\d.*?)?                      # location starts with a digit
    \s*$
    """,
    re.VERBOSE | re.DOTALL,
)

_ITEM = re.compile(r"^(\d+)(?::(\d+))?(?:-(\d+)(?::(\d+))?)?$")

# Whitespace is only insignificant next to ":" and "-".
_SEPARATOR_SPACE = re.compile(r"\s*([:-])\s*")


@dataclass(frozen=True)
class _Item:
    """One comma-separated piece of a location, numbers as typed."""
    first: int
    first_verse: Optional[int]
    second: Optional[int]
    second_verse: Optional[int]


class ReferenceParser:
    """
    Parser bound to one corpus index.

    The parser is a pure function of its input and the index; it holds no
    state between calls.

    Usage:
        parser = ReferenceParser(index)
        parser.parse("john 3:16-18")      # [AddressRange(JHN.3.16, JHN.3.18)]
        parser.parse("Ps 23; Rom 8:28")   # two ranges, input order
    """

    def __init__(self, corpus: CorpusIndex):
        self.corpus = corpus

    def parse(self, text: str) -> List[AddressRange]:
        """
        Parse reference text into ranges.

        Raises:
            EmptyInputError: nothing but whitespace or separators
            UnknownBookError: the book matches no alias, or several equally
            OutOfRangeError: chapter or verse outside the active translation
            MalformedRangeError: end before start, missing chapter or verse
        """
        if text is None or not text.strip():
            raise EmptyInputError(reference=text)

        source = text
        cleaned = _DASHES.sub("-", text)
        segments = cleaned.split(";")
        if not any(segment.strip() for segment in segments):
            raise EmptyInputError(reference=source)

        results: List[AddressRange] = []
        book: Optional[BookId] = None
        try:
            for segment in segments:
                if not segment.strip():
                    raise MalformedRangeError(
                        "Empty reference between ';' separators",
                        reference=source,
                        suggestions=["remove the extra ';'"],
                    )
                book, ranges = self._parse_reference(segment, book, source)
                results.extend(ranges)
        except ReferenceParseError as e:
            logger.debug("Reference rejected", reference=source, error_code=e.error_code, error=e.message)
            raise

        return results

    def parse_one(self, text: str) -> AddressRange:
        """Parse text that must denote exactly one range."""
        ranges = self.parse(text)
        if len(ranges) != 1:
            raise MalformedRangeError(
                f"Expected a single reference, got {len(ranges)}",
                reference=text,
            )
        return ranges[0]

    def parse_address(self, text: str) -> CanonicalAddress:
        """Parse text that must denote exactly one verse."""
        reference = self.parse_one(text)
        if not reference.is_single:
            raise MalformedRangeError(
                "Expected a single verse, got a range",
                reference=text,
                suggestions=["give one verse, e.g. 'John 3:16'"],
            )
        return reference.start

    def normalize(self, text: str) -> str:
        """Canonical display form of reference text (e.g. 'jn 3:16' -> 'John 3:16')."""
        return format_ranges(self.parse(text), self.corpus)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _parse_reference(
        self,
        segment: str,
        inherited: Optional[BookId],
        source: str,
    ) -> Tuple[BookId, List[AddressRange]]:
        match = _BOOK_AND_LOCATION.match(segment)
        if match is None:
            raise MalformedRangeError(
                f"Cannot read reference '{segment.strip()}'",
                reference=source,
            )

        book_token, location = match.group("book"), match.group("location")
        if book_token:
            book = self.corpus.resolve_book(book_token, reference=source)
        elif inherited is not None:
            book = inherited
        else:
            raise MalformedRangeError(
                f"Reference '{segment.strip()}' does not name a book",
                reference=source,
                suggestions=["start with a book name, e.g. 'John 3:16'"],
            )

        if not location:
            raise MalformedRangeError(
                f"Reference '{segment.strip()}' is missing a chapter",
                reference=source,
                suggestions=[f"add a chapter, e.g. '{book.display_name} 1'"],
            )

        return book, self._parse_location(book, location, source)

    def _parse_location(self, book: BookId, location: str, source: str) -> List[AddressRange]:
        ranges: List[AddressRange] = []
        chapter: Optional[int] = None
        verse_mode = False

        for raw in location.split(","):
            token = _SEPARATOR_SPACE.sub(r"\1", raw.strip())
            item = self._read_item(token, source)

            if item.first_verse is not None:
                # CH:V, CH:V-V or CH:V-CH:V
                chapter = item.first
                verse_mode = True
                start = self.corpus.address(book, item.first, item.first_verse, source)
                if item.second is None:
                    end = start
                elif item.second_verse is None:
                    end = self.corpus.address(book, item.first, item.second, source)
                else:
                    end = self.corpus.address(book, item.second, item.second_verse, source)
                    chapter = item.second
            elif verse_mode:
                # V, V-V or V-CH:V relative to the current chapter
                start = self.corpus.address(book, chapter, item.first, source)
                if item.second is None:
                    end = start
                elif item.second_verse is None:
                    end = self.corpus.address(book, chapter, item.second, source)
                else:
                    end = self.corpus.address(book, item.second, item.second_verse, source)
                    chapter = item.second
            else:
                # CH, CH-CH or CH-CH:V
                if item.second is None:
                    whole = self.corpus.chapter_range(book, item.first, reference=source)
                    start, end = whole.start, whole.end
                elif item.second_verse is None:
                    self._check_order(book, (item.first, 0), (item.second, 0), token, source)
                    whole = self.corpus.chapter_range(book, item.first, item.second, reference=source)
                    start, end = whole.start, whole.end
                else:
                    start = self.corpus.chapter_range(book, item.first, reference=source).start
                    end = self.corpus.address(book, item.second, item.second_verse, source)
                chapter = end.chapter

            self._check_order(
                book,
                (start.chapter, start.verse),
                (end.chapter, end.verse),
                token,
                source,
            )
            ranges.append(AddressRange(start, end))

        return ranges

    @staticmethod
    def _read_item(token: str, source: str) -> _Item:
        if not token:
            raise MalformedRangeError(
                "Empty item between ',' separators",
                reference=source,
                suggestions=["remove the extra ','"],
            )
        match = _ITEM.match(token)
        if match is None:
            raise MalformedRangeError(
                f"Cannot read '{token}' as a chapter or verse",
                reference=source,
                suggestions=["use forms like '3', '3:16', '3:16-18' or '3:16-4:2'"],
            )
        first, first_verse, second, second_verse = match.groups()
        return _Item(
            first=int(first),
            first_verse=int(first_verse) if first_verse is not None else None,
            second=int(second) if second is not None else None,
            second_verse=int(second_verse) if second_verse is not None else None,
        )

    @staticmethod
    def _check_order(
        book: BookId,
        start: Tuple[int, int],
        end: Tuple[int, int],
        token: str,
        source: str,
    ) -> None:
        if end < start:
            raise MalformedRangeError(
                f"Range '{book.display_name} {token}' ends before it starts",
                reference=source,
                suggestions=["put the earlier verse first"],
            )
