"""
Marginalia - Domain Model

Value types (addresses, ranges), annotation records, layers, collections and
the events emitted when they change.
"""

from domain.canon import BookId, Testament, default_aliases, fold_alias
from domain.entities import (
    AddressRange,
    Annotation,
    AnnotationKind,
    BookmarkPayload,
    CanonicalAddress,
    Collection,
    HighlightPayload,
    Layer,
    NoteMatch,
    NotePayload,
    Payload,
    SearchMatch,
    VerseCard,
    overlap,
)
from domain.events import DomainEvent

__all__ = [
    "BookId",
    "Testament",
    "default_aliases",
    "fold_alias",
    "CanonicalAddress",
    "AddressRange",
    "overlap",
    "AnnotationKind",
    "HighlightPayload",
    "NotePayload",
    "BookmarkPayload",
    "Payload",
    "Annotation",
    "Layer",
    "VerseCard",
    "Collection",
    "SearchMatch",
    "NoteMatch",
    "DomainEvent",
]
