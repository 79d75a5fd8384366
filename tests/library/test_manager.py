"""
Tests for the collection manager: commands, export and merge-on-import.
"""
import pytest

from core.async_utils import CancelScope
from core.errors import (
    ConflictError,
    MarginaliaValidationError,
    NotFoundError,
    OperationCancelledError,
    OutOfRangeError,
    SchemaInvalidError,
)
from domain.canon import BookId
from domain.entities import AddressRange, CanonicalAddress
from domain.events import CollectionImported
from library.commands import (
    AddCardCommand,
    CreateCollectionCommand,
    DeleteCollectionCommand,
    MoveCardCommand,
    RemoveCardCommand,
    UpdateCardCommand,
    UpdateCollectionCommand,
)
from library.manager import CollectionManager, deterministic_card_id


@pytest.fixture
def faith(manager, parser):
    """A 'Faith' collection with one card on Hebrews 11:1."""
    collection = manager.execute(CreateCollectionCommand(title="Faith")).value
    manager.execute(AddCardCommand(
        collection_id=collection.id,
        title="Assurance",
        references=tuple(parser.parse("Heb 11:1")),
    ))
    return manager.get(collection.id)


class TestCommands:
    """Tests for editing collections through commands."""

    def test_create_and_add_card(self, faith, parser):
        assert faith.title == "Faith"
        assert [card.title for card in faith.cards] == ["Assurance"]
        assert faith.cards[0].references == tuple(parser.parse("Hebrews 11:1"))

    def test_blank_title_rejected(self, manager):
        with pytest.raises(MarginaliaValidationError):
            manager.execute(CreateCollectionCommand(title="  "))

    def test_duplicate_collection_id(self, manager):
        manager.execute(CreateCollectionCommand(title="A", collection_id="a"))
        with pytest.raises(ConflictError):
            manager.execute(CreateCollectionCommand(title="B", collection_id="a"))

    def test_card_needs_references(self, manager, faith):
        with pytest.raises(MarginaliaValidationError):
            manager.execute(AddCardCommand(collection_id=faith.id, title="Empty", references=()))

    def test_card_reference_outside_corpus(self, manager, faith):
        outside = AddressRange.single(CanonicalAddress(BookId.REV, 1, 1))
        with pytest.raises(OutOfRangeError):
            manager.execute(AddCardCommand(collection_id=faith.id, title="End", references=(outside,)))

    def test_unknown_collection(self, manager):
        with pytest.raises(NotFoundError):
            manager.execute(DeleteCollectionCommand(collection_id="missing"))

    def test_unknown_card(self, manager, faith):
        with pytest.raises(NotFoundError):
            manager.execute(RemoveCardCommand(collection_id=faith.id, card_id="missing"))

    def test_update_collection(self, manager, faith):
        result = manager.execute(UpdateCollectionCommand(collection_id=faith.id, description="Hebrews 11"))
        assert result.value.description == "Hebrews 11"
        assert result.value.title == "Faith"

    def test_update_card_keeps_omitted_fields(self, manager, faith, parser):
        card = faith.cards[0]
        updated = manager.execute(UpdateCardCommand(
            collection_id=faith.id,
            card_id=card.id,
            references=tuple(parser.parse("Heb 11:1-3")),
        )).value
        assert updated.title == "Assurance"
        assert updated.references == tuple(parser.parse("Hebrews 11:1-3"))

    def test_insert_move_and_remove(self, manager, faith, parser):
        first = faith.cards[0]
        second = manager.execute(AddCardCommand(
            collection_id=faith.id,
            title="Love",
            references=tuple(parser.parse("1 John 4:8")),
            position=0,
        )).value
        assert [c.id for c in manager.get(faith.id).cards] == [second.id, first.id]

        manager.execute(MoveCardCommand(collection_id=faith.id, card_id=second.id, position=5))
        assert [c.id for c in manager.get(faith.id).cards] == [first.id, second.id]

        manager.execute(RemoveCardCommand(collection_id=faith.id, card_id=first.id))
        assert [c.id for c in manager.get(faith.id).cards] == [second.id]

    def test_delete_collection(self, manager, faith):
        manager.execute(DeleteCollectionCommand(collection_id=faith.id))
        assert faith.id not in manager
        assert len(manager) == 0

    def test_subscribers_see_each_commit(self, manager, parser):
        seen = []
        unsubscribe = manager.subscribe(lambda result, state: seen.append(len(state)))
        manager.execute(CreateCollectionCommand(title="A"))
        manager.execute(CreateCollectionCommand(title="B"))
        unsubscribe()
        manager.execute(CreateCollectionCommand(title="C"))
        assert seen == [1, 2]

    def test_collections_sorted_by_title(self, manager):
        manager.execute(CreateCollectionCommand(title="hope"))
        manager.execute(CreateCollectionCommand(title="Faith"))
        assert [c.title for c in manager.collections()] == ["Faith", "hope"]


class TestExportImport:
    """Tests for the exchange format round trip and merge rules."""

    def test_export_then_import_into_fresh_state(self, manager, faith, parser):
        exported = manager.export_collection(faith.id)
        assert exported.cards[0].references == ["Hebrews 11:1"]

        other = CollectionManager(parser)
        report = other.import_collection(exported.to_dict())

        assert report.created
        assert report.ok
        imported = other.get(faith.id)
        assert imported.title == "Faith"
        assert imported.cards[0].title == "Assurance"
        assert imported.cards[0].id == faith.cards[0].id
        assert imported.cards[0].references == faith.cards[0].references

    def test_import_is_idempotent(self, manager, faith, parser):
        exported = manager.export_collection(faith.id).to_json()
        other = CollectionManager(parser)
        other.import_collection(exported)
        state = other.snapshot()

        report = other.import_collection(exported)

        assert not report.created
        assert report.added == ()
        assert report.unchanged == (faith.cards[0].id,)
        assert other.snapshot() is state

    def test_import_into_existing_does_not_clobber(self, manager, faith):
        card = faith.cards[0]
        report = manager.import_collection({
            "schemaVersion": 2,
            "id": faith.id,
            "title": "",
            "cards": [{"id": card.id, "title": " ", "description": None, "references": []}],
        })
        assert report.unchanged == (card.id,)
        assert manager.get(faith.id) == faith

    def test_import_updates_populated_fields(self, manager, faith):
        card = faith.cards[0]
        report = manager.import_collection({
            "schemaVersion": 2,
            "id": faith.id,
            "description": "Chapter of faith",
            "cards": [{"id": card.id, "description": "Substance of things hoped for"}],
        })
        assert report.updated == (card.id,)
        merged = manager.get(faith.id)
        assert merged.title == "Faith"
        assert merged.description == "Chapter of faith"
        assert merged.cards[0].title == "Assurance"
        assert merged.cards[0].description == "Substance of things hoped for"
        assert merged.cards[0].references == card.references

    def test_bad_cards_are_rejected_individually(self, manager):
        report = manager.import_collection({
            "schemaVersion": 2,
            "id": "mixed",
            "title": "Mixed",
            "cards": [
                {"title": "Good", "references": ["John 3:16"]},
                {"title": "Unknown book", "references": ["Hezekiah 1:1"]},
                {"title": "Outside", "references": ["John 3:99"]},
                {"references": ["John 3:17"]},
                {"title": "No references"},
            ],
        })
        assert len(report.added) == 1
        assert [r.position for r in report.rejected] == [1, 2, 3, 4]
        assert "Hezekiah 1:1" in report.rejected[0].reasons[0]
        assert report.rejected[3].reasons == ("card has no title",)
        assert report.rejected[4].reasons == ("card has no references",)
        assert not report.ok
        assert [c.title for c in manager.get("mixed").cards] == ["Good"]

    def test_card_with_no_valid_cards_still_creates_collection(self, manager):
        report = manager.import_collection({
            "schemaVersion": 2,
            "id": "empty",
            "title": "Empty",
            "cards": [{"title": "Bad", "references": ["Psalm 99"]}],
        })
        assert report.created
        assert manager.get("empty").cards == ()

    def test_new_collection_needs_title(self, manager):
        with pytest.raises(SchemaInvalidError):
            manager.import_collection({"schemaVersion": 2, "id": "untitled", "cards": []})
        assert len(manager) == 0

    def test_invalid_document_commits_nothing(self, manager):
        with pytest.raises(SchemaInvalidError):
            manager.import_collection({"id": "faith", "title": "Faith"})
        assert len(manager) == 0

    def test_missing_card_ids_are_deterministic(self, parser):
        data = {
            "schemaVersion": 1,
            "id": "psalms",
            "title": "Psalms",
            "cards": [{"title": "Shepherd", "references": "Ps 23:1; Psalm 23:4"}],
        }
        first = CollectionManager(parser)
        second = CollectionManager(parser)
        first.import_collection(data)
        second.import_collection(data)

        card = first.get("psalms").cards[0]
        assert card.id == second.get("psalms").cards[0].id
        assert card.id == deterministic_card_id("psalms", 0, "Shepherd")
        assert len(card.references) == 2

    def test_repeated_v1_import_is_unchanged(self, manager):
        data = {
            "schemaVersion": 1,
            "id": "psalms",
            "title": "Psalms",
            "cards": [{"title": "Shepherd", "references": "Ps 23:1"}],
        }
        manager.import_collection(data)
        report = manager.import_collection(data)
        assert report.added == ()
        assert len(report.unchanged) == 1

    def test_import_event_reports_counts(self, manager):
        events = []
        manager.subscribe(lambda result, state: events.extend(result.events))
        manager.import_collection({
            "schemaVersion": 2,
            "id": "x",
            "title": "X",
            "cards": [{"title": "A", "references": ["John 3:16"]}, {"title": "B"}],
        })
        imported = [e for e in events if isinstance(e, CollectionImported)]
        assert imported[0].accepted == 1
        assert imported[0].rejected == 1
        assert imported[0].created


class TestCancellation:
    """Tests for cancelling long imports."""

    def _document(self, count: int):
        return {
            "schemaVersion": 2,
            "id": "bulk",
            "title": "Bulk",
            "cards": [{"title": f"Card {i}", "references": ["John 3:16"]} for i in range(count)],
        }

    def test_cancelled_import_commits_nothing(self, manager):
        scope = CancelScope()
        scope.cancel()
        with pytest.raises(OperationCancelledError):
            manager.import_collection(self._document(3), cancel=scope)
        assert "bulk" not in manager

    @pytest.mark.asyncio
    async def test_async_import(self, manager):
        report = await manager.import_collection_async(self._document(10), yield_every=3)
        assert len(report.added) == 10
        assert len(manager.get("bulk").cards) == 10

    @pytest.mark.asyncio
    async def test_async_import_cancelled_midway(self, manager):
        scope = CancelScope()
        document = self._document(10)

        original = manager._import_card

        def cancel_after_five(work, position, card):
            original(work, position, card)
            if position == 4:
                scope.cancel()

        manager._import_card = cancel_after_five
        with pytest.raises(OperationCancelledError):
            await manager.import_collection_async(document, cancel=scope, yield_every=2)
        assert "bulk" not in manager

    @pytest.mark.asyncio
    async def test_yield_every_must_be_positive(self, manager):
        with pytest.raises(ValueError):
            await manager.import_collection_async(self._document(1), yield_every=0)
