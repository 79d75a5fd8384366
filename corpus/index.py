"""
Marginalia - Corpus Index

Immutable lookup table for one translation: canonical address to verse text,
book/chapter/verse boundaries, and the case-insensitive book alias index.

An address is valid iff the table holds an entry for it, so sparse corpora
(partial translations, test fixtures) are legal.
"""
from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from core.errors import OutOfRangeError, UnknownBookError
from domain.canon import BookId, default_aliases, fold_alias
from domain.entities import AddressRange, CanonicalAddress
from observability.logging import get_logger

logger = get_logger(__name__)

VerseRow = Tuple[BookId, int, int, str]

# Characters an editor uses to trigger reference completion.
SUGGESTION_TRIGGERS: Tuple[str, ...] = ("[[", "@", "#", "+")

# Alias precedence when two books claim the same folded alias.
_RANK_PRIMARY = 0
_RANK_ABBREVIATION = 1
_RANK_EXTRA = 2


@dataclass(frozen=True)
class _AliasEntry:
    rank: int
    books: FrozenSet[BookId]


def _build_alias_index(
    books: Iterable[BookId],
    extra_aliases: Mapping[BookId, Iterable[str]],
) -> Dict[str, _AliasEntry]:
    """
    Fold every alias and resolve collisions.

    The lowest rank wins (code or full display name over abbreviation over
    corpus-supplied alias); equal-rank claims by different books leave the
    alias ambiguous.
    """
    index: Dict[str, _AliasEntry] = {}

    def claim(alias: str, book: BookId, rank: int) -> None:
        key = fold_alias(alias)
        if not key:
            return
        current = index.get(key)
        if current is None or rank < current.rank:
            index[key] = _AliasEntry(rank, frozenset({book}))
        elif rank == current.rank and book not in current.books:
            index[key] = _AliasEntry(rank, current.books | {book})

    for book in books:
        primary = {fold_alias(book.value), fold_alias(book.display_name)}
        for alias in default_aliases(book):
            rank = _RANK_PRIMARY if fold_alias(alias) in primary else _RANK_ABBREVIATION
            claim(alias, book, rank)
        for alias in extra_aliases.get(book, ()):
            claim(alias, book, _RANK_EXTRA)
    return index


def _by_canon_order(books: Iterable[BookId]) -> List[BookId]:
    return sorted(books, key=lambda book: book.order)


class CorpusIndex:
    """
    Read-only verse table for the active translation.

    Usage:
        index = CorpusIndex.from_rows("KJV", [(BookId.JHN, 3, 16, "For God so loved ...")])
        address = index.address(BookId.JHN, 3, 16)
        index.text(address)
    """

    def __init__(
        self,
        translation: str,
        verses: Mapping[CanonicalAddress, str],
        aliases: Optional[Mapping[BookId, Iterable[str]]] = None,
    ):
        if not translation or not translation.strip():
            raise ValueError("translation cannot be empty")
        self._translation = translation.strip()

        ordered = sorted(verses.items(), key=lambda item: item[0].sort_key())
        self._text: Mapping[CanonicalAddress, str] = MappingProxyType(dict(ordered))
        self._addresses: Tuple[CanonicalAddress, ...] = tuple(address for address, _ in ordered)
        self._keys: Tuple[Tuple[int, int, int], ...] = tuple(
            address.sort_key() for address in self._addresses
        )

        chapters: Dict[BookId, Dict[int, List[int]]] = {}
        for address in self._addresses:
            chapters.setdefault(address.book, {}).setdefault(address.chapter, []).append(address.verse)
        self._chapters: Dict[BookId, Dict[int, Tuple[int, ...]]] = {
            book: {chapter: tuple(numbers) for chapter, numbers in by_chapter.items()}
            for book, by_chapter in chapters.items()
        }

        # Aliases cover the whole canon, so a known but absent book is
        # reported as out of range rather than unknown.
        self._aliases = _build_alias_index(BookId, aliases or {})

        logger.debug(
            "Corpus index built",
            translation=self._translation,
            books=len(self._chapters),
            verses=len(self._addresses),
        )

    @classmethod
    def from_rows(
        cls,
        translation: str,
        rows: Iterable[VerseRow],
        aliases: Optional[Mapping[BookId, Iterable[str]]] = None,
    ) -> "CorpusIndex":
        """Build from ``(book, chapter, verse, text)`` rows; later duplicates win."""
        verses: Dict[CanonicalAddress, str] = {}
        for book, chapter, verse, text in rows:
            verses[CanonicalAddress(book, chapter, verse)] = text
        return cls(translation, verses, aliases)

    # -------------------------------------------------------------------------
    # Bounds
    # -------------------------------------------------------------------------

    @property
    def translation(self) -> str:
        return self._translation

    @property
    def books(self) -> Tuple[BookId, ...]:
        """Books present in this translation, in canon order."""
        return tuple(_by_canon_order(self._chapters))

    def __len__(self) -> int:
        return len(self._addresses)

    def has_book(self, book: BookId) -> bool:
        return book in self._chapters

    def chapters(self, book: BookId) -> Tuple[int, ...]:
        """Chapter numbers present for a book, ascending (empty if absent)."""
        return tuple(sorted(self._chapters.get(book, {})))

    def verses(self, book: BookId, chapter: int) -> Tuple[int, ...]:
        return self._chapters.get(book, {}).get(chapter, ())

    def verse_count(self, book: BookId, chapter: int) -> int:
        return len(self.verses(book, chapter))

    def first_verse(self, book: BookId, chapter: int) -> int:
        return self._chapter_verses(book, chapter)[0]

    def last_verse(self, book: BookId, chapter: int) -> int:
        return self._chapter_verses(book, chapter)[-1]

    def contains(self, book: BookId, chapter: int, verse: int) -> bool:
        return verse in self.verses(book, chapter)

    # -------------------------------------------------------------------------
    # Validated construction
    # -------------------------------------------------------------------------

    def address(
        self,
        book: BookId,
        chapter: int,
        verse: int,
        reference: Optional[str] = None,
    ) -> CanonicalAddress:
        """
        The only sanctioned way to build an address from user input.

        Raises:
            OutOfRangeError: the book, chapter or verse is not in this translation
        """
        numbers = self._chapter_verses(book, chapter, reference)
        if verse not in numbers:
            raise OutOfRangeError(
                f"{book.display_name} {chapter} has no verse {verse} in {self._translation}",
                reference=reference,
                book=book.value,
                chapter=chapter,
                verse=verse,
                suggestions=[f"{book.display_name} {chapter} ends at verse {numbers[-1]}"],
            )
        return CanonicalAddress(book, chapter, verse)

    def chapter_range(
        self,
        book: BookId,
        first_chapter: int,
        last_chapter: Optional[int] = None,
        reference: Optional[str] = None,
    ) -> AddressRange:
        """Whole-chapter range, optionally spanning through ``last_chapter``."""
        last_chapter = first_chapter if last_chapter is None else last_chapter
        first = self._chapter_verses(book, first_chapter, reference)
        last = self._chapter_verses(book, last_chapter, reference)
        return AddressRange(
            CanonicalAddress(book, first_chapter, first[0]),
            CanonicalAddress(book, last_chapter, last[-1]),
        )

    def _chapter_verses(
        self,
        book: BookId,
        chapter: int,
        reference: Optional[str] = None,
    ) -> Tuple[int, ...]:
        if book not in self._chapters:
            raise OutOfRangeError(
                f"{book.display_name} is not available in {self._translation}",
                reference=reference,
                book=book.value,
            )
        numbers = self._chapters[book].get(chapter)
        if numbers:
            return numbers
        available = self.chapters(book)
        raise OutOfRangeError(
            f"{book.display_name} has no chapter {chapter} in {self._translation}",
            reference=reference,
            book=book.value,
            chapter=chapter,
            suggestions=[
                f"{book.display_name} has chapters {available[0]}-{available[-1]} in {self._translation}"
            ],
        )

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def text(self, address: CanonicalAddress) -> str:
        """
        Verse text for an address.

        Raises:
            OutOfRangeError: the address is not in this translation
        """
        try:
            return self._text[address]
        except KeyError:
            raise OutOfRangeError(
                f"{address.display} is not available in {self._translation}",
                book=address.book.value,
                chapter=address.chapter,
                verse=address.verse,
            ) from None

    def get_text(self, address: CanonicalAddress) -> Optional[str]:
        return self._text.get(address)

    def iter_verses(
        self,
        within: Union[None, BookId, AddressRange] = None,
    ) -> Iterator[Tuple[CanonicalAddress, str]]:
        """
        Iterate ``(address, text)`` pairs in canonical order.

        Args:
            within: None for the whole corpus, a book, or an address range
        """
        if within is None:
            lo, hi = 0, len(self._keys)
        elif isinstance(within, BookId):
            lo = bisect_left(self._keys, (within.order, 0, 0))
            hi = bisect_left(self._keys, (within.order + 1, 0, 0))
        else:
            lo = bisect_left(self._keys, within.start.sort_key())
            hi = bisect_right(self._keys, within.end.sort_key())
        for position in range(lo, hi):
            address = self._addresses[position]
            yield address, self._text[address]

    # -------------------------------------------------------------------------
    # Book aliases
    # -------------------------------------------------------------------------

    def resolve_book(self, token: str, reference: Optional[str] = None) -> BookId:
        """
        Resolve a typed book name, abbreviation or prefix to a BookId.

        Resolution order:
            1. exact folded alias
            2. the token is a prefix of aliases owned by exactly one book
            3. among those books, the one whose full name starts with the token
        A tie that survives all three raises UnknownBookError with the
        candidates, so the caller can ask which book was meant.
        """
        key = fold_alias(token)
        if not key:
            raise UnknownBookError(token, reference=reference)

        entry = self._aliases.get(key)
        if entry is not None:
            if len(entry.books) == 1:
                return next(iter(entry.books))
            raise UnknownBookError(
                token,
                reference=reference,
                candidates=[book.display_name for book in _by_canon_order(entry.books)],
            )

        matches = {
            book
            for alias, alias_entry in self._aliases.items()
            if alias.startswith(key)
            for book in alias_entry.books
        }
        if not matches:
            raise UnknownBookError(token, reference=reference)
        if len(matches) == 1:
            return next(iter(matches))

        by_full_name = [book for book in matches if fold_alias(book.display_name).startswith(key)]
        if len(by_full_name) == 1:
            return by_full_name[0]

        candidates = _by_canon_order(by_full_name or matches)
        raise UnknownBookError(
            token,
            reference=reference,
            candidates=[book.display_name for book in candidates],
        )

    def aliases_for(self, book: BookId) -> Tuple[str, ...]:
        """Folded aliases that resolve unambiguously to ``book``."""
        return tuple(sorted(
            alias for alias, entry in self._aliases.items() if entry.books == frozenset({book})
        ))

    def suggest_books(self, prefix: str, limit: int = 10) -> List[str]:
        """
        Canonical display names of present books matching a typed prefix.

        Leading completion triggers ('@', '[[', ...) are ignored. Books whose
        full name starts with the prefix come first, then books matched only
        through an abbreviation; each group is in canon order. The raw typed
        text never appears in the result.
        """
        if limit < 1:
            return []
        token = prefix.strip()
        stripped = True
        while stripped:
            stripped = False
            for trigger in SUGGESTION_TRIGGERS:
                if token.startswith(trigger):
                    token = token[len(trigger):].lstrip()
                    stripped = True
        key = fold_alias(token)
        present = self.books
        if not key:
            return [book.display_name for book in present[:limit]]

        full_name = [book for book in present if fold_alias(book.display_name).startswith(key)]
        seen = set(full_name)
        by_alias: List[BookId] = []
        for book in present:
            if book in seen:
                continue
            if any(alias.startswith(key) for alias in self.aliases_for(book)):
                by_alias.append(book)
                seen.add(book)
        return [book.display_name for book in (full_name + by_alias)[:limit]]


def merge_ranges(ranges: Sequence[AddressRange]) -> List[AddressRange]:
    """Sort ranges canonically and fold overlapping ones together."""
    merged: List[AddressRange] = []
    for current in sorted(ranges, key=lambda r: r.sort_key()):
        if merged and merged[-1].overlaps(current):
            merged[-1] = merged[-1].hull(current)
        else:
            merged.append(current)
    return merged
