"""
Marginalia - Collection Commands

Request objects accepted by CollectionManager.execute().
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from core.commands import BaseCommand
from domain.entities import AddressRange


# ==================== Collection Commands ====================

@dataclass(frozen=True, kw_only=True)
class CreateCollectionCommand(BaseCommand):
    title: str
    description: str = ""
    collection_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class UpdateCollectionCommand(BaseCommand):
    """Fields left as None keep their current value."""
    collection_id: str
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class DeleteCollectionCommand(BaseCommand):
    collection_id: str


# ==================== Card Commands ====================

@dataclass(frozen=True, kw_only=True)
class AddCardCommand(BaseCommand):
    """
    Add a verse card.

    Args:
        collection_id: Target collection
        title: Card title (required)
        references: One or more validated ranges, in display order
        description: Free text
        position: Insert position; appended when omitted
        card_id: Explicit id; generated when omitted
    """
    collection_id: str
    title: str
    references: Tuple[AddressRange, ...]
    description: str = ""
    position: Optional[int] = None
    card_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class UpdateCardCommand(BaseCommand):
    """Fields left as None keep their current value."""
    collection_id: str
    card_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    references: Optional[Tuple[AddressRange, ...]] = None


@dataclass(frozen=True, kw_only=True)
class RemoveCardCommand(BaseCommand):
    collection_id: str
    card_id: str


@dataclass(frozen=True, kw_only=True)
class MoveCardCommand(BaseCommand):
    """Move a card to ``position`` (clamped to the card list)."""
    collection_id: str
    card_id: str
    position: int
