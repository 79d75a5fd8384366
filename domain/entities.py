"""
Marginalia - Domain Entities

Value objects and records of the annotation layer engine.

Design Principles:
    - Addresses and ranges are immutable, totally ordered value objects
    - Annotation, layer and collection records are frozen; "mutation" is
      the owning store swapping in a replaced record
    - Collections reference verses by address range, never by copied text
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union
from uuid import uuid4

from domain.canon import BookId


def new_id() -> str:
    """Generate a unique record id."""
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# VALUE OBJECTS - Addresses and ranges
# =============================================================================


@dataclass(frozen=True, slots=True)
class CanonicalAddress:
    """
    Value object for a single verse.

    Ordering is canon order of the book, then chapter, then verse. Instances
    handed out by the corpus index have been checked against the active
    translation; this class only enforces the structural rules.

    Format: BOOK.CHAPTER.VERSE (e.g., JHN.3.16)
    """
    book: BookId
    chapter: int
    verse: int

    def __post_init__(self) -> None:
        if not isinstance(self.book, BookId):
            raise TypeError(f"book must be a BookId, got {type(self.book).__name__}")
        if self.chapter < 1:
            raise ValueError(f"Chapter must be >= 1: {self.chapter}")
        if self.verse < 1:
            raise ValueError(f"Verse must be >= 1: {self.verse}")

    def __lt__(self, other: "CanonicalAddress") -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: "CanonicalAddress") -> bool:
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: "CanonicalAddress") -> bool:
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: "CanonicalAddress") -> bool:
        return self.sort_key() >= other.sort_key()

    def __str__(self) -> str:
        return f"{self.book.value}.{self.chapter}.{self.verse}"

    def sort_key(self) -> Tuple[int, int, int]:
        return (self.book.order, self.chapter, self.verse)

    @property
    def display(self) -> str:
        """Human-readable form, e.g. 'John 3:16'."""
        return f"{self.book.display_name} {self.chapter}:{self.verse}"

    @classmethod
    def from_id(cls, verse_id: str) -> "CanonicalAddress":
        """Rebuild from the machine form produced by ``str()`` (e.g. 'JHN.3.16')."""
        try:
            code, chapter, verse = verse_id.strip().split(".")
            return cls(BookId.from_code(code), int(chapter), int(verse))
        except ValueError as e:
            raise ValueError(f"Invalid verse id '{verse_id}'") from e


@dataclass(frozen=True, slots=True)
class AddressRange:
    """
    Inclusive span of verses within one book.

    A single verse is the degenerate range ``start == end``.
    """
    start: CanonicalAddress
    end: CanonicalAddress

    def __post_init__(self) -> None:
        if self.start.book != self.end.book:
            raise ValueError(f"Range crosses books: {self.start} .. {self.end}")
        if self.end < self.start:
            raise ValueError(f"Range end precedes start: {self.start} .. {self.end}")

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{self.end}"

    @classmethod
    def single(cls, address: CanonicalAddress) -> "AddressRange":
        return cls(address, address)

    @property
    def book(self) -> BookId:
        return self.start.book

    @property
    def is_single(self) -> bool:
        return self.start == self.end

    def sort_key(self) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
        return (self.start.sort_key(), self.end.sort_key())

    def contains(self, address: CanonicalAddress) -> bool:
        return self.start <= address <= self.end

    def overlaps(self, other: "AddressRange") -> bool:
        """Two ranges overlap iff max(starts) <= min(ends) within the same book."""
        if self.book != other.book:
            return False
        return max(self.start, other.start) <= min(self.end, other.end)

    def hull(self, other: "AddressRange") -> "AddressRange":
        """Smallest range covering both. Raises ValueError across books."""
        return AddressRange(min(self.start, other.start), max(self.end, other.end))

    @classmethod
    def from_id(cls, range_id: str) -> "AddressRange":
        """Rebuild from the machine form produced by ``str()``."""
        start, _, end = range_id.partition("-")
        first = CanonicalAddress.from_id(start)
        return cls(first, CanonicalAddress.from_id(end) if end else first)


def overlap(first: AddressRange, second: AddressRange) -> bool:
    return first.overlaps(second)


# =============================================================================
# ANNOTATIONS
# =============================================================================


class AnnotationKind(str, Enum):
    """Annotation variants."""
    HIGHLIGHT = "highlight"
    NOTE = "note"
    BOOKMARK = "bookmark"


@dataclass(frozen=True, slots=True)
class HighlightPayload:
    """A colour token; the renderer maps tokens to actual colours."""
    color: str

    def __post_init__(self) -> None:
        if not self.color or not self.color.strip():
            raise ValueError("Highlight color cannot be empty")

    @property
    def kind(self) -> AnnotationKind:
        return AnnotationKind.HIGHLIGHT

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "color": self.color}


@dataclass(frozen=True, slots=True)
class NotePayload:
    """Rich note text, stored verbatim and never rendered by the engine."""
    text: str

    @property
    def kind(self) -> AnnotationKind:
        return AnnotationKind.NOTE

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "text": self.text}


@dataclass(frozen=True, slots=True)
class BookmarkPayload:

    @property
    def kind(self) -> AnnotationKind:
        return AnnotationKind.BOOKMARK

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value}


Payload = Union[HighlightPayload, NotePayload, BookmarkPayload]


def payload_from_dict(data: Dict[str, Any]) -> Payload:
    kind = AnnotationKind(data["kind"])
    if kind is AnnotationKind.HIGHLIGHT:
        return HighlightPayload(color=data["color"])
    if kind is AnnotationKind.NOTE:
        return NotePayload(text=data.get("text", ""))
    return BookmarkPayload()


@dataclass(frozen=True, slots=True)
class Annotation:
    """
    A highlight, note or bookmark anchored to an address range on a layer.

    The store exclusively owns these records. Payload and layer changes
    produce a replaced record with the same id and range; a range change
    is a delete followed by a create under a new id.
    """
    id: str
    range: AddressRange
    layer_id: str
    created_at: datetime
    payload: Payload

    @property
    def kind(self) -> AnnotationKind:
        return self.payload.kind

    def with_payload(self, payload: Payload) -> "Annotation":
        return replace(self, payload=payload)

    def with_layer(self, layer_id: str) -> "Annotation":
        return replace(self, layer_id=layer_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "range": str(self.range),
            "layer_id": self.layer_id,
            "created_at": self.created_at.isoformat(),
            "payload": self.payload.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Annotation":
        return cls(
            id=data["id"],
            range=AddressRange.from_id(data["range"]),
            layer_id=data["layer_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            payload=payload_from_dict(data["payload"]),
        )


@dataclass(frozen=True, slots=True)
class Layer:
    """Named, ordered, independently toggleable grouping of annotations."""
    id: str
    name: str
    color: str = "yellow"
    visible: bool = True
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "visible": self.visible,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Layer":
        return cls(
            id=data["id"],
            name=data["name"],
            color=data.get("color", "yellow"),
            visible=data.get("visible", True),
            order=data.get("order", 0),
        )


# =============================================================================
# COLLECTIONS
# =============================================================================


@dataclass(frozen=True, slots=True)
class VerseCard:
    """A titled note referencing one or more, possibly non-contiguous, ranges."""
    id: str
    title: str
    description: str = ""
    references: Tuple[AddressRange, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "references": [str(reference) for reference in self.references],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerseCard":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            references=tuple(AddressRange.from_id(r) for r in data.get("references", [])),
        )


@dataclass(frozen=True, slots=True)
class Collection:
    """User-curated, exportable group of verse cards."""
    id: str
    title: str
    description: str = ""
    cards: Tuple[VerseCard, ...] = ()

    def card(self, card_id: str) -> Optional[VerseCard]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def card_index(self, card_id: str) -> int:
        """Position of a card, or -1 when absent."""
        for index, card in enumerate(self.cards):
            if card.id == card_id:
                return index
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "cards": [card.to_dict() for card in self.cards],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Collection":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            cards=tuple(VerseCard.from_dict(card) for card in data.get("cards", [])),
        )


# =============================================================================
# SEARCH RESULTS
# =============================================================================

Span = Tuple[int, int]


@dataclass(frozen=True, slots=True)
class SearchMatch:
    """Match spans as (offset, length) pairs into a verse's plain text."""
    address: CanonicalAddress
    spans: Tuple[Span, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": str(self.address),
            "spans": [list(span) for span in self.spans],
        }


@dataclass(frozen=True, slots=True)
class NoteMatch:
    """Match spans into the text of a note annotation."""
    annotation_id: str
    range: AddressRange
    spans: Tuple[Span, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "annotation_id": self.annotation_id,
            "range": str(self.range),
            "spans": [list(span) for span in self.spans],
        }
