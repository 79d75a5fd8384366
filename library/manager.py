"""
Marginalia - Collection Manager

Owns the session's collections of verse cards: command-driven editing,
export to the versioned wire format, and merge-on-import.

Import is the one deliberately partial-success path in the engine. The
document as a whole must be structurally valid (SchemaInvalidError
otherwise), but each card is validated on its own and a bad card is reported
in the ImportReport instead of failing the import. Everything that is
accepted is committed together at the end; a cancelled import commits
nothing.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import NAMESPACE_URL, uuid4, uuid5

from core.async_utils import CancelScope
from core.commands import BaseCommand, CommandDispatcher, CommandResult
from core.errors import (
    ConflictError,
    MarginaliaValidationError,
    NotFoundError,
    OutOfRangeError,
    ReferenceParseError,
    SchemaInvalidError,
)
from domain.entities import AddressRange, Collection, VerseCard, new_id
from domain.events import (
    CardAdded,
    CardMoved,
    CardRemoved,
    CardUpdated,
    CollectionCreated,
    CollectionDeleted,
    CollectionImported,
    CollectionUpdated,
    DomainEvent,
)
from library.commands import (
    AddCardCommand,
    CreateCollectionCommand,
    DeleteCollectionCommand,
    MoveCardCommand,
    RemoveCardCommand,
    UpdateCardCommand,
    UpdateCollectionCommand,
)
from library.schemas import (
    SCHEMA_VERSION,
    SerializedCard,
    SerializedCollection,
    parse_serialized_collection,
)
from observability.logging import get_logger
from references.formatting import format_range
from references.parser import ReferenceParser

logger = get_logger(__name__)

CollectionState = Mapping[str, Collection]
Subscriber = Callable[[CommandResult, CollectionState], None]

_CARD_NAMESPACE = uuid5(NAMESPACE_URL, "marginalia:verse-card")


def deterministic_card_id(collection_id: str, position: int, title: str) -> str:
    """
    Id for an imported card that carries none.

    Derived from the collection id, the card's position in the import and its
    title, so importing the same export twice yields the same ids.
    """
    return uuid5(_CARD_NAMESPACE, f"{collection_id}\x1f{position}\x1f{title}").hex


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


# =============================================================================
# IMPORT REPORT
# =============================================================================


@dataclass(frozen=True)
class CardRejection:
    """A card that was not imported, and why."""
    position: int
    card_id: Optional[str]
    title: Optional[str]
    reasons: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "card_id": self.card_id,
            "title": self.title,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class ImportReport:
    """
    Outcome of an import.

    Attributes:
        collection_id: The collection imported into
        created: True when the collection did not exist before
        added: Ids of cards appended
        updated: Ids of existing cards that changed
        unchanged: Ids of existing cards the import left as they were
        rejected: Cards that failed validation, with reasons
    """
    collection_id: str
    created: bool = False
    added: Tuple[str, ...] = ()
    updated: Tuple[str, ...] = ()
    unchanged: Tuple[str, ...] = ()
    rejected: Tuple[CardRejection, ...] = ()

    @property
    def accepted(self) -> Tuple[str, ...]:
        return self.added + self.updated + self.unchanged

    @property
    def ok(self) -> bool:
        return not self.rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "created": self.created,
            "added": list(self.added),
            "updated": list(self.updated),
            "unchanged": list(self.unchanged),
            "rejected": [rejection.to_dict() for rejection in self.rejected],
        }


@dataclass
class _ImportWork:
    """Mutable scratch state of one import, discarded on failure."""
    serialized: SerializedCollection
    existing: Optional[Collection]
    cards: List[VerseCard] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    rejected: List[CardRejection] = field(default_factory=list)
    events: List[DomainEvent] = field(default_factory=list)


# =============================================================================
# MANAGER
# =============================================================================


class CollectionManager:
    """
    Single owner of collection state for one session.

    Usage:
        manager = CollectionManager(parser)
        created = manager.execute(CreateCollectionCommand(title="Faith"))
        manager.execute(AddCardCommand(
            collection_id=created.value.id,
            title="Assurance",
            references=tuple(parser.parse("Heb 11:1")),
        ))
        exported = manager.export_collection(created.value.id)
        report = other_manager.import_collection(exported.to_dict())
    """

    def __init__(
        self,
        parser: ReferenceParser,
        collections: Optional[Mapping[str, Collection]] = None,
        id_factory: Callable[[], str] = new_id,
    ):
        self.parser = parser
        self.corpus = parser.corpus
        self._new_id = id_factory
        self._collections: CollectionState = MappingProxyType(dict(collections or {}))
        self._subscribers: List[Subscriber] = []

        self._dispatcher = CommandDispatcher()
        self._dispatcher.register(CreateCollectionCommand, self._create_collection)
        self._dispatcher.register(UpdateCollectionCommand, self._update_collection)
        self._dispatcher.register(DeleteCollectionCommand, self._delete_collection)
        self._dispatcher.register(AddCardCommand, self._add_card)
        self._dispatcher.register(UpdateCardCommand, self._update_card)
        self._dispatcher.register(RemoveCardCommand, self._remove_card)
        self._dispatcher.register(MoveCardCommand, self._move_card)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def snapshot(self) -> CollectionState:
        """Immutable view of every collection at the last commit."""
        return self._collections

    def restore(self, collections: Mapping[str, Collection]) -> None:
        """Replace the whole state, e.g. after loading a saved session."""
        self._collections = MappingProxyType(dict(collections))
        logger.info("Collections restored", collections=len(self._collections))

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call ``callback(result, collections)`` after every commit.

        Returns:
            Function to unsubscribe
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def get(self, collection_id: str) -> Collection:
        collection = self._collections.get(collection_id)
        if collection is None:
            raise NotFoundError("collection", collection_id)
        return collection

    def collections(self) -> List[Collection]:
        """All collections, by title then id."""
        return sorted(self._collections.values(), key=lambda c: (c.title.casefold(), c.id))

    def __len__(self) -> int:
        return len(self._collections)

    def __contains__(self, collection_id: object) -> bool:
        return collection_id in self._collections

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def execute(self, command: BaseCommand) -> CommandResult:
        """
        Apply one command atomically.

        Raises:
            NotFoundError: unknown collection or card id
            ConflictError: an explicit id is already taken
            MarginaliaValidationError: blank title or no references
            OutOfRangeError: a reference is outside the active corpus
            ValueError: the command type is not handled by this manager
        """
        return self._dispatcher.dispatch(command)

    def _commit(
        self,
        command_id: Any,
        collections: Dict[str, Collection],
        events: Sequence[DomainEvent],
        affected_ids: Sequence[str],
        value: object = None,
        operation: str = "command",
    ) -> CommandResult:
        self._collections = MappingProxyType(collections)
        result = CommandResult(
            command_id=command_id,
            events=tuple(events),
            affected_ids=tuple(affected_ids),
            value=value,
        )
        logger.info(
            "Collection change committed",
            operation=operation,
            command_id=str(command_id),
            collections=len(collections),
            affected=len(result.affected_ids),
        )
        for subscriber in list(self._subscribers):
            try:
                subscriber(result, self._collections)
            except Exception:
                logger.exception("Collection subscriber failed", subscriber=repr(subscriber))
        return result

    def _check_references(self, references: Sequence[AddressRange], field_name: str = "references") -> None:
        if not references:
            raise MarginaliaValidationError(
                "A verse card needs at least one reference",
                field_name=field_name,
                suggestions=["add a reference such as 'John 3:16'"],
            )
        for reference in references:
            for address in (reference.start, reference.end):
                if self.corpus.get_text(address) is None:
                    raise OutOfRangeError(
                        f"{address.display} is not available in {self.corpus.translation}",
                        book=address.book.value,
                        chapter=address.chapter,
                        verse=address.verse,
                    )

    @staticmethod
    def _check_title(title: Optional[str], what: str) -> None:
        if title is not None and not title.strip():
            raise MarginaliaValidationError(
                f"{what} title cannot be empty",
                field_name="title",
                actual_value=title,
            )

    def _card_position(self, collection: Collection, card_id: str) -> int:
        position = collection.card_index(card_id)
        if position < 0:
            raise NotFoundError("card", card_id)
        return position

    def _create_collection(self, command: CreateCollectionCommand) -> CommandResult:
        self._check_title(command.title, "Collection")
        collection_id = command.collection_id or self._new_id()
        if collection_id in self._collections:
            raise ConflictError(
                f"A collection with id '{collection_id}' already exists",
                conflicting_ids=[collection_id],
            )
        collection = Collection(
            id=collection_id,
            title=command.title.strip(),
            description=command.description,
        )
        collections = {**self._collections, collection.id: collection}
        return self._commit(
            command.command_id,
            collections,
            [CollectionCreated(aggregate_id=collection.id, title=collection.title)],
            [collection.id],
            value=collection,
            operation="create_collection",
        )

    def _update_collection(self, command: UpdateCollectionCommand) -> CommandResult:
        current = self.get(command.collection_id)
        self._check_title(command.title, "Collection")
        changes: Dict[str, Any] = {}
        if command.title is not None and command.title.strip() != current.title:
            changes["title"] = command.title.strip()
        if command.description is not None and command.description != current.description:
            changes["description"] = command.description
        if not changes:
            return CommandResult(command_id=command.command_id, value=current)

        updated = replace(current, **changes)
        return self._commit(
            command.command_id,
            {**self._collections, updated.id: updated},
            [CollectionUpdated(aggregate_id=updated.id, fields_updated=tuple(sorted(changes)))],
            [updated.id],
            value=updated,
            operation="update_collection",
        )

    def _delete_collection(self, command: DeleteCollectionCommand) -> CommandResult:
        current = self.get(command.collection_id)
        collections = dict(self._collections)
        del collections[current.id]
        return self._commit(
            command.command_id,
            collections,
            [CollectionDeleted(aggregate_id=current.id)],
            [current.id, *(card.id for card in current.cards)],
            value=current,
            operation="delete_collection",
        )

    def _add_card(self, command: AddCardCommand) -> CommandResult:
        current = self.get(command.collection_id)
        self._check_title(command.title, "Card")
        self._check_references(command.references)
        card_id = command.card_id or self._new_id()
        if current.card_index(card_id) >= 0:
            raise ConflictError(
                f"Collection '{current.title}' already has a card with id '{card_id}'",
                conflicting_ids=[card_id],
            )

        card = VerseCard(
            id=card_id,
            title=command.title.strip(),
            description=command.description,
            references=tuple(command.references),
        )
        cards = list(current.cards)
        position = len(cards) if command.position is None else max(0, min(command.position, len(cards)))
        cards.insert(position, card)
        updated = replace(current, cards=tuple(cards))
        return self._commit(
            command.command_id,
            {**self._collections, updated.id: updated},
            [CardAdded(aggregate_id=updated.id, card_id=card.id, position=position)],
            [updated.id, card.id],
            value=card,
            operation="add_card",
        )

    def _update_card(self, command: UpdateCardCommand) -> CommandResult:
        current = self.get(command.collection_id)
        position = self._card_position(current, command.card_id)
        card = current.cards[position]
        self._check_title(command.title, "Card")
        if command.references is not None:
            self._check_references(command.references)

        changes: Dict[str, Any] = {}
        if command.title is not None and command.title.strip() != card.title:
            changes["title"] = command.title.strip()
        if command.description is not None and command.description != card.description:
            changes["description"] = command.description
        if command.references is not None and tuple(command.references) != card.references:
            changes["references"] = tuple(command.references)
        if not changes:
            return CommandResult(command_id=command.command_id, value=card)

        new_card = replace(card, **changes)
        cards = list(current.cards)
        cards[position] = new_card
        updated = replace(current, cards=tuple(cards))
        return self._commit(
            command.command_id,
            {**self._collections, updated.id: updated},
            [CardUpdated(aggregate_id=updated.id, card_id=new_card.id, fields_updated=tuple(sorted(changes)))],
            [updated.id, new_card.id],
            value=new_card,
            operation="update_card",
        )

    def _remove_card(self, command: RemoveCardCommand) -> CommandResult:
        current = self.get(command.collection_id)
        position = self._card_position(current, command.card_id)
        cards = list(current.cards)
        removed = cards.pop(position)
        updated = replace(current, cards=tuple(cards))
        return self._commit(
            command.command_id,
            {**self._collections, updated.id: updated},
            [CardRemoved(aggregate_id=updated.id, card_id=removed.id)],
            [updated.id, removed.id],
            value=removed,
            operation="remove_card",
        )

    def _move_card(self, command: MoveCardCommand) -> CommandResult:
        current = self.get(command.collection_id)
        position = self._card_position(current, command.card_id)
        cards = list(current.cards)
        card = cards.pop(position)
        target = max(0, min(command.position, len(cards)))
        if target == position:
            return CommandResult(command_id=command.command_id, value=card)
        cards.insert(target, card)
        updated = replace(current, cards=tuple(cards))
        return self._commit(
            command.command_id,
            {**self._collections, updated.id: updated},
            [CardMoved(aggregate_id=updated.id, card_id=card.id, from_position=position, to_position=target)],
            [updated.id, card.id],
            value=card,
            operation="move_card",
        )

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_collection(self, collection_id: str) -> SerializedCollection:
        """
        Serialize a collection to the current wire format.

        References are written in canonical display form, so they parse back
        to the same ranges on import.
        """
        collection = self.get(collection_id)
        serialized = SerializedCollection(
            schema_version=SCHEMA_VERSION,
            id=collection.id,
            title=collection.title,
            description=collection.description,
            cards=[
                SerializedCard(
                    id=card.id,
                    title=card.title,
                    description=card.description,
                    references=[format_range(reference, self.corpus) for reference in card.references],
                )
                for card in collection.cards
            ],
        )
        logger.info("Collection exported", collection_id=collection.id, cards=len(collection.cards))
        return serialized

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def import_collection(self, data: Any, cancel: Optional[CancelScope] = None) -> ImportReport:
        """
        Merge a serialized collection into the current state.

        New cards are appended; cards matching an existing card by id are
        updated without clobbering populated fields with blank ones. Invalid
        cards are rejected individually and listed in the report.

        Args:
            data: Mapping, JSON text or SerializedCollection
            cancel: Scope checked before each card

        Raises:
            SchemaInvalidError: the data is not a structurally valid export
            OperationCancelledError: the scope was cancelled; nothing committed
        """
        work = self._begin_import(data)
        for position, card in enumerate(work.serialized.cards):
            if cancel is not None:
                cancel.check("Collection import")
            self._import_card(work, position, card)
        if cancel is not None:
            cancel.check("Collection import")
        return self._finish_import(work)

    async def import_collection_async(
        self,
        data: Any,
        cancel: Optional[CancelScope] = None,
        yield_every: int = 25,
    ) -> ImportReport:
        """
        Same as import_collection, yielding to the event loop between batches
        of cards so a UI can stay responsive and cancel.
        """
        if yield_every < 1:
            raise ValueError("yield_every must be positive")
        work = self._begin_import(data)
        for position, card in enumerate(work.serialized.cards):
            if cancel is not None:
                cancel.check("Collection import")
            self._import_card(work, position, card)
            if (position + 1) % yield_every == 0:
                await asyncio.sleep(0)
        if cancel is not None:
            cancel.check("Collection import")
        return self._finish_import(work)

    def _begin_import(self, data: Any) -> _ImportWork:
        try:
            serialized = parse_serialized_collection(data)
        except SchemaInvalidError as e:
            logger.warning("Collection import rejected", error=e.message, problems=e.problems)
            raise

        existing = self._collections.get(serialized.id)
        if existing is None and _is_blank(serialized.title):
            raise SchemaInvalidError(
                "A new collection needs a title",
                problems=["title: required when the collection does not exist yet"],
            )
        return _ImportWork(
            serialized=serialized,
            existing=existing,
            cards=list(existing.cards) if existing else [],
        )

    def _parse_references(self, texts: Sequence[str]) -> Tuple[Tuple[AddressRange, ...], List[str]]:
        ranges: List[AddressRange] = []
        reasons: List[str] = []
        for text in texts:
            try:
                ranges.extend(self.parser.parse(text))
            except ReferenceParseError as e:
                reasons.append(f"'{text}': {e.user_message()}")
        return tuple(ranges), reasons

    def _import_card(self, work: _ImportWork, position: int, incoming: SerializedCard) -> None:
        collection_id = work.serialized.id
        card_id = incoming.id or deterministic_card_id(collection_id, position, incoming.title or "")

        references: Tuple[AddressRange, ...] = ()
        reasons: List[str] = []
        if incoming.references:
            references, reasons = self._parse_references(incoming.references)

        index = next((i for i, card in enumerate(work.cards) if card.id == card_id), -1)

        if index < 0:
            if _is_blank(incoming.title):
                reasons.append("card has no title")
            if not references and not reasons:
                reasons.append("card has no references")
        if reasons:
            work.rejected.append(CardRejection(
                position=position,
                card_id=card_id,
                title=incoming.title,
                reasons=tuple(reasons),
            ))
            return

        if index < 0:
            card = VerseCard(
                id=card_id,
                title=incoming.title.strip(),
                description=incoming.description or "",
                references=references,
            )
            work.cards.append(card)
            work.added.append(card.id)
            work.events.append(CardAdded(aggregate_id=collection_id, card_id=card.id, position=len(work.cards) - 1))
            return

        current = work.cards[index]
        changes: Dict[str, Any] = {}
        if not _is_blank(incoming.title) and incoming.title.strip() != current.title:
            changes["title"] = incoming.title.strip()
        if not _is_blank(incoming.description) and incoming.description != current.description:
            changes["description"] = incoming.description
        if references and references != current.references:
            changes["references"] = references

        if not changes:
            if card_id not in work.unchanged and card_id not in work.updated and card_id not in work.added:
                work.unchanged.append(card_id)
            return

        work.cards[index] = replace(current, **changes)
        if card_id in work.unchanged:
            work.unchanged.remove(card_id)
        if card_id not in work.updated and card_id not in work.added:
            work.updated.append(card_id)
        work.events.append(CardUpdated(
            aggregate_id=collection_id,
            card_id=card_id,
            fields_updated=tuple(sorted(changes)),
        ))

    def _finish_import(self, work: _ImportWork) -> ImportReport:
        serialized = work.serialized
        existing = work.existing
        events: List[DomainEvent] = []

        if existing is None:
            collection = Collection(
                id=serialized.id,
                title=serialized.title.strip(),
                description=serialized.description or "",
                cards=tuple(work.cards),
            )
            events.append(CollectionCreated(aggregate_id=collection.id, title=collection.title))
        else:
            changes: Dict[str, Any] = {}
            if not _is_blank(serialized.title) and serialized.title.strip() != existing.title:
                changes["title"] = serialized.title.strip()
            if not _is_blank(serialized.description) and serialized.description != existing.description:
                changes["description"] = serialized.description
            collection = replace(existing, cards=tuple(work.cards), **changes)
            if changes:
                events.append(CollectionUpdated(aggregate_id=collection.id, fields_updated=tuple(sorted(changes))))

        events.extend(work.events)
        report = ImportReport(
            collection_id=collection.id,
            created=existing is None,
            added=tuple(work.added),
            updated=tuple(work.updated),
            unchanged=tuple(work.unchanged),
            rejected=tuple(work.rejected),
        )
        events.append(CollectionImported(
            aggregate_id=collection.id,
            accepted=len(report.accepted),
            rejected=len(report.rejected),
            created=report.created,
        ))

        if existing is None or collection != existing:
            self._commit(
                uuid4(),
                {**self._collections, collection.id: collection},
                events,
                [collection.id, *report.added, *report.updated],
                value=report,
                operation="import_collection",
            )

        log = logger.warning if report.rejected else logger.info
        log(
            "Collection imported",
            collection_id=collection.id,
            created=report.created,
            added=len(report.added),
            updated=len(report.updated),
            unchanged=len(report.unchanged),
            rejected=len(report.rejected),
        )
        return report
