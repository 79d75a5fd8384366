"""
Marginalia - Search Engine

Matches query text against verse text (and note text) and returns match
spans. It never builds markup and never interprets the query as a regular
expression: every term is escaped before a pattern is compiled, so
metacharacters like ``a(b*`` match literally and cannot cause catastrophic
backtracking.

Search is a pure function of the query, the scope and the (immutable)
corpus, so calls are restartable and can run alongside each other.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import (
    AsyncIterator,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
)

from annotations.snapshot import AnnotationSnapshot
from config import SearchConfig
from core.async_utils import CancelScope, iterate_cooperatively
from core.errors import MarginaliaValidationError, QueryTooLongError
from corpus.index import CorpusIndex, merge_ranges
from domain.canon import BookId
from domain.entities import (
    AddressRange,
    AnnotationKind,
    CanonicalAddress,
    NoteMatch,
    NotePayload,
    SearchMatch,
)
from observability.logging import get_logger
from search.highlight import normalize_spans

logger = get_logger(__name__)


class SearchMode(str, Enum):
    """How query text becomes patterns."""
    LITERAL = "literal"
    ALL_WORDS = "all_words"


@dataclass(frozen=True)
class SearchScope:
    """
    Where to search: the whole corpus, one book, or a set of ranges.

    Usage:
        SearchScope.corpus()
        SearchScope.book(BookId.JHN)
        SearchScope.range(parser.parse_one("Ps 23"))
        SearchScope.ranges(parser.parse("John 3; Rom 8"))
    """
    book_id: Optional[BookId] = None
    address_ranges: Tuple[AddressRange, ...] = ()
    whole_corpus: bool = True

    @classmethod
    def corpus(cls) -> "SearchScope":
        return cls()

    @classmethod
    def book(cls, book: BookId) -> "SearchScope":
        return cls(book_id=book, whole_corpus=False)

    @classmethod
    def range(cls, reference: AddressRange) -> "SearchScope":
        return cls(address_ranges=(reference,), whole_corpus=False)

    @classmethod
    def ranges(cls, references: Iterable[AddressRange]) -> "SearchScope":
        return cls(address_ranges=tuple(merge_ranges(list(references))), whole_corpus=False)

    def iter_verses(self, corpus: CorpusIndex) -> Iterator[Tuple[CanonicalAddress, str]]:
        """Verses in scope, canonical order, each at most once."""
        if self.whole_corpus:
            yield from corpus.iter_verses()
        elif self.book_id is not None:
            yield from corpus.iter_verses(self.book_id)
        else:
            for reference in merge_ranges(list(self.address_ranges)):
                yield from corpus.iter_verses(reference)

    def contains(self, reference: AddressRange) -> bool:
        """True when ``reference`` overlaps the scope."""
        if self.whole_corpus:
            return True
        if self.book_id is not None:
            return reference.book == self.book_id
        return any(reference.overlaps(scope_range) for scope_range in self.address_ranges)


@dataclass(frozen=True)
class CompiledQuery:
    """Escaped patterns for one query; every pattern must match."""
    query: str
    mode: SearchMode
    patterns: Tuple[re.Pattern, ...]

    def spans(self, text: str) -> Optional[Tuple[Tuple[int, int], ...]]:
        """Merged match spans, or None when some pattern does not match."""
        found: List[Tuple[int, int]] = []
        for pattern in self.patterns:
            hits = [(m.start(), m.end() - m.start()) for m in pattern.finditer(text)]
            if not hits:
                return None
            found.extend(hits)
        return tuple(normalize_spans(found, len(text)))


def _term_pattern(term: str, whole_word: bool) -> str:
    # Internal whitespace runs match any whitespace run; everything else is literal.
    body = r"\s+".join(re.escape(part) for part in term.split())
    if whole_word:
        return rf"(?<!\w){body}(?!\w)"
    return body


class SearchEngine:
    """
    Literal and all-words search over a corpus index.

    Usage:
        engine = SearchEngine(index, SearchConfig())
        for match in engine.search("so loved", SearchScope.book(BookId.JHN)):
            render_highlighted(index.text(match.address), match.spans)
    """

    def __init__(self, corpus: CorpusIndex, config: Optional[SearchConfig] = None):
        self.corpus = corpus
        self.config = config or SearchConfig()

    def compile(
        self,
        query: str,
        mode: SearchMode = SearchMode.LITERAL,
        case_sensitive: Optional[bool] = None,
        whole_word: bool = False,
    ) -> Optional[CompiledQuery]:
        """
        Validate and compile a query.

        Returns:
            None for an empty query

        Raises:
            QueryTooLongError: the query exceeds the configured maximum
        """
        if query is None:
            return None
        if len(query) > self.config.max_query_length:
            raise QueryTooLongError(
                f"Search query is {len(query)} characters; the limit is {self.config.max_query_length}",
                field_name="query",
                actual_value=len(query),
                suggestions=["shorten the query"],
            )
        text = query.strip()
        if not text:
            return None

        if case_sensitive is None:
            case_sensitive = self.config.case_sensitive
        flags = 0 if case_sensitive else re.IGNORECASE

        if mode is SearchMode.ALL_WORDS:
            terms = list(dict.fromkeys(text.split()))
        else:
            terms = [text]
        patterns = tuple(re.compile(_term_pattern(term, whole_word), flags) for term in terms)
        return CompiledQuery(query=text, mode=mode, patterns=patterns)

    @staticmethod
    def _check_limit(limit: Optional[int]) -> None:
        if limit is not None and limit < 0:
            raise MarginaliaValidationError(
                "Result limit cannot be negative",
                field_name="limit",
                actual_value=limit,
            )

    def search(
        self,
        query: str,
        scope: Optional[SearchScope] = None,
        *,
        mode: SearchMode = SearchMode.LITERAL,
        case_sensitive: Optional[bool] = None,
        whole_word: bool = False,
        limit: Optional[int] = None,
        cancel: Optional[CancelScope] = None,
    ) -> Iterator[SearchMatch]:
        """
        Lazily yield matches in canonical address order.

        The query is validated when this is called, not on first iteration.
        A cancelled scope ends the iteration before the next verse.

        Raises:
            QueryTooLongError: the query exceeds the configured maximum
            MarginaliaValidationError: negative limit
        """
        self._check_limit(limit)
        compiled = self.compile(query, mode, case_sensitive, whole_word)
        if limit is None:
            limit = self.config.default_limit
        if compiled is None or limit == 0:
            return iter(())
        logger.debug(
            "Search started",
            mode=mode.value,
            terms=len(compiled.patterns),
            scope="corpus" if (scope is None or scope.whole_corpus) else "partial",
            limit=limit,
        )
        return self._scan(compiled, scope or SearchScope.corpus(), limit, cancel)

    def _scan(
        self,
        compiled: CompiledQuery,
        scope: SearchScope,
        limit: Optional[int],
        cancel: Optional[CancelScope],
    ) -> Iterator[SearchMatch]:
        produced = 0
        for address, text in scope.iter_verses(self.corpus):
            if cancel is not None and cancel.cancelled:
                logger.debug("Search cancelled", produced=produced)
                return
            spans = compiled.spans(text)
            if spans is None:
                continue
            yield SearchMatch(address=address, spans=spans)
            produced += 1
            if limit is not None and produced >= limit:
                return

    def search_async(
        self,
        query: str,
        scope: Optional[SearchScope] = None,
        *,
        cancel: Optional[CancelScope] = None,
        yield_every: int = 50,
        **options,
    ) -> AsyncIterator[SearchMatch]:
        """Async iteration over ``search`` that yields to the event loop."""
        matches = self.search(query, scope, cancel=cancel, **options)
        return iterate_cooperatively(matches, cancel, yield_every)

    def search_notes(
        self,
        query: str,
        snapshot: AnnotationSnapshot,
        scope: Optional[SearchScope] = None,
        *,
        mode: SearchMode = SearchMode.LITERAL,
        case_sensitive: Optional[bool] = None,
        whole_word: bool = False,
        layer_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[NoteMatch]:
        """
        Match note annotation text in one snapshot.

        Results are ordered by the note's range, then creation time.
        """
        self._check_limit(limit)
        compiled = self.compile(query, mode, case_sensitive, whole_word)
        if compiled is None or limit == 0:
            return []

        results: List[NoteMatch] = []
        for annotation in snapshot.annotations_of_kind(AnnotationKind.NOTE):
            if layer_id is not None and annotation.layer_id != layer_id:
                continue
            if scope is not None and not scope.contains(annotation.range):
                continue
            payload = annotation.payload
            if not isinstance(payload, NotePayload):
                continue
            spans = compiled.spans(payload.text)
            if spans is None:
                continue
            results.append(NoteMatch(annotation_id=annotation.id, range=annotation.range, spans=spans))
            if limit is not None and len(results) >= limit:
                break
        return results
