"""
Tests for the annotation store: commands, overlap policy and layers.
"""
import pytest

from annotations.commands import (
    AssignAnnotationLayerCommand,
    CreateAnnotationCommand,
    CreateLayerCommand,
    DeleteAnnotationCommand,
    DeleteLayerCommand,
    MoveAnnotationCommand,
    UpdateAnnotationPayloadCommand,
    UpdateLayerCommand,
)
from annotations.store import AnnotationStore, NOTE_SEPARATOR
from config import LayerDeletionPolicy
from core.errors import (
    AnnotationKindMismatchError,
    ConfirmationRequiredError,
    ConflictError,
    MarginaliaValidationError,
    NotFoundError,
    OutOfRangeError,
)
from domain.canon import BookId
from domain.entities import (
    AddressRange,
    AnnotationKind,
    BookmarkPayload,
    CanonicalAddress,
    HighlightPayload,
    NotePayload,
)
from domain.events import AnnotationsMerged, AnnotationsReassigned, LayerDeleted


def layer(store: AnnotationStore, name: str) -> str:
    return store.execute(CreateLayerCommand(name=name)).value.id


def highlight(store, parser, reference, color="yellow", layer_id=None):
    return store.execute(CreateAnnotationCommand(
        range=parser.parse_one(reference),
        payload=HighlightPayload(color),
        layer_id=layer_id,
    ))


def note(store, parser, reference, text, layer_id=None):
    return store.execute(CreateAnnotationCommand(
        range=parser.parse_one(reference),
        payload=NotePayload(text),
        layer_id=layer_id,
    ))


class TestCreate:
    """Tests for creating annotations."""

    def test_default_layer_exists(self, store):
        layers = store.layers()
        assert [l.id for l in layers] == ["default"]
        assert layers[0].order == 0

    def test_create_highlight_on_default_layer(self, store, parser):
        result = highlight(store, parser, "John 3:16")
        annotation = result.value
        assert annotation.layer_id == "default"
        assert annotation.kind is AnnotationKind.HIGHLIGHT
        assert store.get(annotation.id) == annotation
        assert result.affected_ids == (annotation.id,)
        assert result.events[-1].event_type == "AnnotationCreated"
        assert len(store) == 1

    def test_unknown_layer(self, store, parser):
        with pytest.raises(NotFoundError):
            highlight(store, parser, "John 3:16", layer_id="missing")
        assert len(store) == 0

    def test_range_outside_corpus(self, store):
        r = AddressRange.single(CanonicalAddress(BookId.REV, 1, 1))
        with pytest.raises(OutOfRangeError):
            store.execute(CreateAnnotationCommand(range=r, payload=BookmarkPayload()))

    def test_empty_note_rejected(self, store, parser):
        with pytest.raises(MarginaliaValidationError):
            note(store, parser, "John 3:16", "   ")

    def test_layers_stack(self, store, parser):
        l1 = layer(store, "L1")
        l2 = layer(store, "L2")
        highlight(store, parser, "John 3:16", layer_id=l1)
        highlight(store, parser, "John 3:16", layer_id=l2)
        assert len(store) == 2

    def test_overlapping_lookup_ordered_by_layer(self, store, parser):
        l1 = layer(store, "L1")
        l2 = layer(store, "L2")
        n = note(store, parser, "John 3:16-17", "The heart of it", layer_id=l2)
        h = highlight(store, parser, "John 3:16", layer_id=l1)

        found = store.annotations_overlapping(parser.parse_one("John 3:16"))
        assert [a.id for a in found] == [h.value.id, n.value.id]

    def test_overlapping_lookup_excludes_other_ranges(self, store, parser):
        highlight(store, parser, "John 3:16")
        highlight(store, parser, "John 3:18", color="blue")
        highlight(store, parser, "1 John 4:8")
        found = store.annotations_overlapping(parser.parse_one("John 3:17-18"))
        assert [a.range for a in found] == [parser.parse_one("John 3:18")]


class TestOverlapPolicy:
    """Tests for same-kind, same-layer overlap."""

    def test_reject_raises_conflict_with_ids(self, store, parser):
        first = highlight(store, parser, "John 3:16-18")
        before = store.snapshot()
        with pytest.raises(ConflictError) as exc_info:
            highlight(store, parser, "John 3:17", color="green")
        assert exc_info.value.conflicting_ids == [first.value.id]
        assert store.snapshot() is before

    def test_different_kind_on_same_layer_is_allowed(self, store, parser):
        highlight(store, parser, "John 3:16")
        note(store, parser, "John 3:16", "A note")
        store.execute(CreateAnnotationCommand(range=parser.parse_one("John 3:16"), payload=BookmarkPayload()))
        assert len(store) == 3

    def test_merge_highlights_into_hull(self, merge_store, parser):
        first = highlight(merge_store, parser, "John 3:16-17")
        result = highlight(merge_store, parser, "John 3:17-19", color="green")

        merged = result.value
        assert merged.range == parser.parse_one("John 3:16-19")
        assert merged.payload == HighlightPayload("green")
        assert result.replaced_ids == (first.value.id,)
        assert result.merged
        assert len(merge_store) == 1
        assert any(isinstance(e, AnnotationsMerged) for e in result.events)

    def test_merge_notes_in_creation_order(self, merge_store, parser):
        note(merge_store, parser, "John 3:16", "first")
        note(merge_store, parser, "John 3:18", "second")
        result = note(merge_store, parser, "John 3:16-18", "third")
        assert result.value.payload.text == NOTE_SEPARATOR.join(["first", "second", "third"])
        assert len(result.replaced_ids) == 2
        assert len(merge_store) == 1

    def test_merge_is_deterministic(self, annotation_config, corpus, parser):
        from config import OverlapPolicy
        from tests.conftest import StepClock, sequential_ids

        annotation_config.overlap_policy = OverlapPolicy.MERGE
        states = []
        for _ in range(2):
            s = AnnotationStore(annotation_config, corpus, clock=StepClock(), id_factory=sequential_ids())
            note(s, parser, "John 3:16", "a")
            note(s, parser, "John 3:17", "b")
            note(s, parser, "John 3:16-17", "c")
            states.append(s.snapshot().annotations)
        assert dict(states[0]) == dict(states[1])


class TestMutation:
    """Tests for update, move, assign and delete."""

    def test_update_payload_keeps_id_and_range(self, store, parser):
        created = highlight(store, parser, "John 3:16").value
        updated = store.execute(UpdateAnnotationPayloadCommand(
            annotation_id=created.id,
            payload=HighlightPayload("green"),
        )).value
        assert updated.id == created.id
        assert updated.range == created.range
        assert store.get(created.id).payload.color == "green"

    def test_update_payload_cannot_change_kind(self, store, parser):
        created = highlight(store, parser, "John 3:16").value
        with pytest.raises(AnnotationKindMismatchError):
            store.execute(UpdateAnnotationPayloadCommand(annotation_id=created.id, payload=NotePayload("x")))

    def test_move_is_delete_and_recreate(self, store, parser):
        created = note(store, parser, "John 3:16", "text").value
        moved = store.execute(MoveAnnotationCommand(
            annotation_id=created.id,
            range=parser.parse_one("John 3:17"),
        )).value
        assert moved.id != created.id
        assert moved.payload == created.payload
        with pytest.raises(NotFoundError):
            store.get(created.id)

    def test_move_onto_own_range_does_not_conflict(self, store, parser):
        created = highlight(store, parser, "John 3:16-17").value
        moved = store.execute(MoveAnnotationCommand(
            annotation_id=created.id,
            range=parser.parse_one("John 3:16-18"),
        )).value
        assert len(store) == 1
        assert moved.range == parser.parse_one("John 3:16-18")

    def test_assign_layer(self, store, parser):
        l1 = layer(store, "L1")
        created = highlight(store, parser, "John 3:16").value
        assigned = store.execute(AssignAnnotationLayerCommand(annotation_id=created.id, layer_id=l1)).value
        assert assigned.id == created.id
        assert assigned.layer_id == l1

    def test_assign_layer_conflict(self, store, parser):
        l1 = layer(store, "L1")
        highlight(store, parser, "John 3:16", layer_id=l1)
        created = highlight(store, parser, "John 3:16").value
        with pytest.raises(ConflictError):
            store.execute(AssignAnnotationLayerCommand(annotation_id=created.id, layer_id=l1))

    def test_delete(self, store, parser):
        created = highlight(store, parser, "John 3:16").value
        store.execute(DeleteAnnotationCommand(annotation_id=created.id))
        assert len(store) == 0
        with pytest.raises(NotFoundError):
            store.execute(DeleteAnnotationCommand(annotation_id=created.id))


class TestLayers:
    """Tests for layer commands and the deletion policy."""

    def test_layer_order_increments(self, store):
        l1 = store.execute(CreateLayerCommand(name="L1")).value
        l2 = store.execute(CreateLayerCommand(name="L2")).value
        assert (l1.order, l2.order) == (1, 2)

    def test_duplicate_layer_id(self, store):
        store.execute(CreateLayerCommand(name="Study", layer_id="study"))
        with pytest.raises(ConflictError):
            store.execute(CreateLayerCommand(name="Other", layer_id="study"))

    def test_update_layer(self, store):
        l1 = layer(store, "L1")
        result = store.execute(UpdateLayerCommand(layer_id=l1, visible=False, name="Hidden"))
        assert result.events[0].fields_updated == ("name", "visible")
        assert store.get_layer(l1).visible is False

    def test_noop_update_does_not_commit(self, store):
        l1 = layer(store, "L1")
        version = store.snapshot().version
        store.execute(UpdateLayerCommand(layer_id=l1, name="L1"))
        assert store.snapshot().version == version

    def test_visible_lookup_skips_hidden_layers(self, store, parser):
        l1 = layer(store, "L1")
        highlight(store, parser, "John 3:16", layer_id=l1)
        highlight(store, parser, "John 3:16")
        store.execute(UpdateLayerCommand(layer_id=l1, visible=False))
        visible = store.visible_annotations_overlapping(parser.parse_one("John 3:16"))
        assert [a.layer_id for a in visible] == ["default"]

    def test_delete_layer_reassigns_to_default(self, store, parser):
        l1 = layer(store, "L1")
        a = highlight(store, parser, "John 3:16", layer_id=l1).value
        b = note(store, parser, "Psalm 23:1", "shepherd", layer_id=l1).value

        result = store.execute(DeleteLayerCommand(layer_id=l1))

        assert len(store) == 2
        assert store.get(a.id).layer_id == "default"
        assert store.get(b.id).layer_id == "default"
        assert store.get(a.id).range == a.range
        assert any(isinstance(e, AnnotationsReassigned) for e in result.events)
        with pytest.raises(NotFoundError):
            store.get_layer(l1)

    def test_reassignment_keeps_overlapping_records(self, store, parser):
        l1 = layer(store, "L1")
        highlight(store, parser, "John 3:16")
        highlight(store, parser, "John 3:16", layer_id=l1)
        store.execute(DeleteLayerCommand(layer_id=l1))
        assert len(store.annotations_in_layer("default")) == 2

    def test_default_layer_cannot_be_deleted(self, store):
        with pytest.raises(ConflictError):
            store.execute(DeleteLayerCommand(layer_id="default"))

    def test_cascade_requires_confirmation(self, annotation_config, corpus, parser):
        annotation_config.layer_deletion_policy = LayerDeletionPolicy.CASCADE
        store = AnnotationStore(annotation_config, corpus)
        l1 = layer(store, "L1")
        highlight(store, parser, "John 3:16", layer_id=l1)

        with pytest.raises(ConfirmationRequiredError):
            store.execute(DeleteLayerCommand(layer_id=l1))
        assert len(store) == 1

        result = store.execute(DeleteLayerCommand(layer_id=l1, confirm=True))
        assert len(store) == 0
        deleted = [e for e in result.events if isinstance(e, LayerDeleted)]
        assert deleted[0].affected_annotations == 1


class TestSnapshots:
    """Tests for copy-on-write state and subscribers."""

    def test_snapshot_is_unaffected_by_later_commits(self, store, parser):
        highlight(store, parser, "John 3:16")
        before = store.snapshot()
        highlight(store, parser, "John 3:18")
        assert len(before) == 1
        assert len(store.snapshot()) == 2
        assert store.snapshot().version == before.version + 1

    def test_snapshot_mappings_are_read_only(self, store):
        with pytest.raises(TypeError):
            store.snapshot().layers["x"] = None

    def test_subscribers_notified_after_commit(self, store, parser):
        seen = []
        unsubscribe = store.subscribe(lambda result, snapshot: seen.append(len(snapshot)))
        highlight(store, parser, "John 3:16")
        unsubscribe()
        highlight(store, parser, "John 3:18")
        assert seen == [1]

    def test_failing_subscriber_does_not_undo_commit(self, store, parser):
        def broken(result, snapshot):
            raise RuntimeError("boom")

        store.subscribe(broken)
        highlight(store, parser, "John 3:16")
        assert len(store) == 1

    def test_restore_validates_layers(self, store, parser):
        from annotations.snapshot import AnnotationSnapshot

        created = highlight(store, parser, "John 3:16").value
        orphan = created.with_layer("gone")
        with pytest.raises(NotFoundError):
            store.restore(AnnotationSnapshot(annotations={orphan.id: orphan}))

    def test_unknown_command(self, store):
        from library.commands import DeleteCollectionCommand

        with pytest.raises(ValueError):
            store.execute(DeleteCollectionCommand(collection_id="x"))
