"""
Marginalia - Collections of Verse Cards

Command-driven editing, versioned export and merge-on-import.
"""
from library.commands import (
    AddCardCommand,
    CreateCollectionCommand,
    DeleteCollectionCommand,
    MoveCardCommand,
    RemoveCardCommand,
    UpdateCardCommand,
    UpdateCollectionCommand,
)
from library.manager import CardRejection, CollectionManager, ImportReport, deterministic_card_id
from library.schemas import SCHEMA_VERSION, SerializedCard, SerializedCollection, migrate

__all__ = [
    "CollectionManager",
    "ImportReport",
    "CardRejection",
    "deterministic_card_id",
    "SCHEMA_VERSION",
    "SerializedCard",
    "SerializedCollection",
    "migrate",
    "CreateCollectionCommand",
    "UpdateCollectionCommand",
    "DeleteCollectionCommand",
    "AddCardCommand",
    "UpdateCardCommand",
    "RemoveCardCommand",
    "MoveCardCommand",
]
