"""
Marginalia - Annotation Store

Owns every layer and annotation of a session. All mutation goes through
``execute(command)``; each command validates against the current snapshot,
builds the next snapshot, and swaps it in as one step. A command that raises
leaves the store exactly as it was.

Policies:
    - Overlapping annotations on different layers are legal and stack.
    - Overlapping annotations of the same kind on the same layer are
      rejected (ConflictError) or merged, per OverlapPolicy; either way the
      caller learns which ids were involved.
    - Deleting a layer applies the configured LayerDeletionPolicy
      (REASSIGN by default). The default layer cannot be deleted.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

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
from annotations.snapshot import AnnotationSnapshot
from config import AnnotationConfig, LayerDeletionPolicy, OverlapPolicy
from core.commands import BaseCommand, CommandDispatcher, CommandResult
from core.errors import (
    AnnotationKindMismatchError,
    ConfirmationRequiredError,
    ConflictError,
    MarginaliaValidationError,
    NotFoundError,
    OutOfRangeError,
)
from corpus.index import CorpusIndex
from domain.entities import (
    AddressRange,
    Annotation,
    BookmarkPayload,
    HighlightPayload,
    Layer,
    NotePayload,
    Payload,
    new_id,
    utc_now,
)
from domain.events import (
    AnnotationCreated,
    AnnotationDeleted,
    AnnotationsMerged,
    AnnotationsReassigned,
    AnnotationUpdated,
    DomainEvent,
    LayerCreated,
    LayerDeleted,
    LayerUpdated,
)
from observability.logging import get_logger

logger = get_logger(__name__)

Subscriber = Callable[[CommandResult, AnnotationSnapshot], None]

NOTE_SEPARATOR = "\n\n"


def merge_payloads(participants: Sequence[Annotation], incoming: Payload) -> Payload:
    """
    Deterministic payload for a merge.

    Highlights take the incoming colour, notes join every participant's
    text in creation order, bookmarks stay empty.

    Args:
        participants: Every annotation being merged, including the incoming one
        incoming: Payload of the annotation being committed
    """
    if isinstance(incoming, HighlightPayload):
        return incoming
    if isinstance(incoming, NotePayload):
        ordered = sorted(participants, key=lambda a: (a.created_at, a.id))
        texts = [a.payload.text for a in ordered if isinstance(a.payload, NotePayload)]
        return NotePayload(text=NOTE_SEPARATOR.join(text for text in texts if text))
    return BookmarkPayload()


class AnnotationStore:
    """
    Single owner of annotation state for one session.

    Not designed for concurrent writers: callers run commands one at a time
    (the UI thread or one event loop). Readers take ``snapshot()`` and may
    use it from anywhere.

    Usage:
        store = AnnotationStore(AnnotationConfig(), corpus=index)
        result = store.execute(CreateAnnotationCommand(
            range=parser.parse_one("John 3:16"),
            payload=HighlightPayload("yellow"),
        ))
        store.annotations_overlapping(result.value.range)
    """

    def __init__(
        self,
        config: Optional[AnnotationConfig] = None,
        corpus: Optional[CorpusIndex] = None,
        snapshot: Optional[AnnotationSnapshot] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_id,
    ):
        self.config = config or AnnotationConfig()
        self.corpus = corpus
        self._clock = clock
        self._new_id = id_factory
        self._subscribers: List[Subscriber] = []
        self._snapshot = self._with_default_layer(snapshot or AnnotationSnapshot())

        self._dispatcher = CommandDispatcher()
        self._dispatcher.register(CreateAnnotationCommand, self._create_annotation)
        self._dispatcher.register(UpdateAnnotationPayloadCommand, self._update_payload)
        self._dispatcher.register(MoveAnnotationCommand, self._move_annotation)
        self._dispatcher.register(AssignAnnotationLayerCommand, self._assign_layer)
        self._dispatcher.register(DeleteAnnotationCommand, self._delete_annotation)
        self._dispatcher.register(CreateLayerCommand, self._create_layer)
        self._dispatcher.register(UpdateLayerCommand, self._update_layer)
        self._dispatcher.register(DeleteLayerCommand, self._delete_layer)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def default_layer_id(self) -> str:
        return self.config.default_layer_id

    def snapshot(self) -> AnnotationSnapshot:
        """The last committed state; immutable."""
        return self._snapshot

    def restore(self, snapshot: AnnotationSnapshot) -> None:
        """
        Replace the whole state, e.g. after loading a saved session.

        Subscribers are not notified; nothing was edited.
        """
        self._validate_snapshot(snapshot)
        self._snapshot = self._with_default_layer(snapshot)
        logger.info(
            "Annotation state restored",
            layers=len(self._snapshot.layers),
            annotations=len(self._snapshot.annotations),
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call ``callback(result, snapshot)`` after every commit.

        Returns:
            Function to unsubscribe
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _with_default_layer(self, snapshot: AnnotationSnapshot) -> AnnotationSnapshot:
        if self.default_layer_id in snapshot.layers:
            return snapshot
        layers = dict(snapshot.layers)
        layers[self.default_layer_id] = Layer(
            id=self.default_layer_id,
            name=self.config.default_layer_name,
            color=self.config.default_layer_color,
            visible=True,
            order=min((layer.order for layer in layers.values()), default=1) - 1,
        )
        return AnnotationSnapshot(layers=layers, annotations=snapshot.annotations, version=snapshot.version)

    def _validate_snapshot(self, snapshot: AnnotationSnapshot) -> None:
        known = set(snapshot.layers) | {self.default_layer_id}
        for annotation in snapshot.annotations.values():
            if annotation.layer_id not in known:
                raise NotFoundError("layer", annotation.layer_id)
            self._check_range(annotation.range)

    # -------------------------------------------------------------------------
    # Read API
    # -------------------------------------------------------------------------

    def get(self, annotation_id: str) -> Annotation:
        annotation = self._snapshot.get(annotation_id)
        if annotation is None:
            raise NotFoundError("annotation", annotation_id)
        return annotation

    def get_layer(self, layer_id: str) -> Layer:
        layer = self._snapshot.layer(layer_id)
        if layer is None:
            raise NotFoundError("layer", layer_id)
        return layer

    def layers(self) -> List[Layer]:
        return self._snapshot.ordered_layers()

    def annotations_overlapping(self, reference: AddressRange) -> List[Annotation]:
        return self._snapshot.annotations_overlapping(reference)

    def visible_annotations_overlapping(self, reference: AddressRange) -> List[Annotation]:
        return self._snapshot.visible_annotations_overlapping(reference)

    def annotations_in_layer(self, layer_id: str) -> List[Annotation]:
        self.get_layer(layer_id)
        return self._snapshot.annotations_in_layer(layer_id)

    def __len__(self) -> int:
        return len(self._snapshot)

    # -------------------------------------------------------------------------
    # Write API
    # -------------------------------------------------------------------------

    def execute(self, command: BaseCommand) -> CommandResult:
        """
        Apply one command atomically.

        Raises:
            NotFoundError: an id named by the command does not exist
            ConflictError: the overlap policy rejected the change
            ConfirmationRequiredError: a cascading delete was not confirmed
            MarginaliaValidationError: invalid command input
            OutOfRangeError: the range is outside the active corpus
            ValueError: the command type is not handled by this store
        """
        return self._dispatcher.dispatch(command)

    def _commit(
        self,
        command: BaseCommand,
        snapshot: AnnotationSnapshot,
        events: Sequence[DomainEvent],
        affected_ids: Sequence[str],
        replaced_ids: Sequence[str] = (),
        conflicts: Sequence[str] = (),
        value: object = None,
    ) -> CommandResult:
        self._snapshot = snapshot
        result = CommandResult(
            command_id=command.command_id,
            events=tuple(events),
            affected_ids=tuple(affected_ids),
            replaced_ids=tuple(replaced_ids),
            conflicts=tuple(conflicts),
            value=value,
        )
        logger.info(
            "Annotation command committed",
            command=command.__class__.__name__,
            command_id=str(command.command_id),
            version=snapshot.version,
            affected=len(result.affected_ids),
            replaced=len(result.replaced_ids),
        )
        for subscriber in list(self._subscribers):
            try:
                subscriber(result, snapshot)
            except Exception:
                logger.exception("Annotation subscriber failed", subscriber=repr(subscriber))
        return result

    # -------------------------------------------------------------------------
    # Validation helpers
    # -------------------------------------------------------------------------

    def _check_range(self, reference: AddressRange) -> None:
        if self.corpus is None:
            return
        for address in (reference.start, reference.end):
            if self.corpus.get_text(address) is None:
                raise OutOfRangeError(
                    f"{address.display} is not available in {self.corpus.translation}",
                    book=address.book.value,
                    chapter=address.chapter,
                    verse=address.verse,
                )

    @staticmethod
    def _check_payload(payload: Payload) -> None:
        if not isinstance(payload, (HighlightPayload, NotePayload, BookmarkPayload)):
            raise MarginaliaValidationError(
                f"Unsupported payload type {type(payload).__name__}",
                field_name="payload",
                actual_value=repr(payload),
            )
        if isinstance(payload, NotePayload) and not payload.text.strip():
            raise MarginaliaValidationError(
                "Note text cannot be empty",
                field_name="payload.text",
                suggestions=["write some text, or use a bookmark instead"],
            )

    def _conflicts(
        self,
        snapshot: AnnotationSnapshot,
        reference: AddressRange,
        layer_id: str,
        payload: Payload,
        exclude: Optional[str] = None,
    ) -> List[Annotation]:
        """Same-kind annotations on the same layer that overlap ``reference``."""
        return [
            annotation
            for annotation in snapshot.annotations_overlapping(reference, layer_id=layer_id, kind=payload.kind)
            if annotation.id != exclude
        ]

    def _place(
        self,
        command: BaseCommand,
        annotations: Dict[str, Annotation],
        candidate: Annotation,
        events: List[DomainEvent],
        exclude: Optional[str] = None,
    ) -> Tuple[Annotation, List[str], List[str]]:
        """
        Insert ``candidate`` into ``annotations`` under the overlap policy.

        Returns:
            (stored annotation, replaced ids, conflicting ids)
        """
        snapshot = self._snapshot
        conflicts = self._conflicts(snapshot, candidate.range, candidate.layer_id, candidate.payload, exclude)
        conflict_ids = [a.id for a in conflicts]

        if not conflicts:
            annotations[candidate.id] = candidate
            return candidate, [], []

        layer = snapshot.layers[candidate.layer_id]
        if self.config.overlap_policy is OverlapPolicy.REJECT:
            logger.warning(
                "Overlapping annotation rejected",
                command=command.__class__.__name__,
                layer_id=layer.id,
                kind=candidate.kind.value,
                conflicting_ids=conflict_ids,
            )
            raise ConflictError(
                f"{candidate.range.start.display} overlaps {len(conflicts)} existing "
                f"{candidate.kind.value} annotation(s) on layer '{layer.name}'",
                conflicting_ids=conflict_ids,
                suggestions=["put it on another layer", "or edit the existing annotation"],
            )

        ordered = sorted(conflicts, key=lambda a: (a.created_at, a.id))
        hull = candidate.range
        for annotation in ordered:
            hull = hull.hull(annotation.range)
            del annotations[annotation.id]
            events.append(AnnotationDeleted(aggregate_id=annotation.id, reason="merged"))

        merged = Annotation(
            id=self._new_id(),
            range=hull,
            layer_id=candidate.layer_id,
            created_at=self._clock(),
            payload=merge_payloads([*ordered, candidate], candidate.payload),
        )
        annotations[merged.id] = merged
        events.append(AnnotationsMerged(aggregate_id=merged.id, replaced_ids=tuple(conflict_ids)))
        logger.info(
            "Overlapping annotations merged",
            layer_id=layer.id,
            kind=merged.kind.value,
            merged_id=merged.id,
            replaced_ids=conflict_ids,
        )
        return merged, conflict_ids, conflict_ids

    # -------------------------------------------------------------------------
    # Annotation handlers
    # -------------------------------------------------------------------------

    def _create_annotation(self, command: CreateAnnotationCommand) -> CommandResult:
        layer_id = command.layer_id or self.default_layer_id
        self.get_layer(layer_id)
        self._check_payload(command.payload)
        self._check_range(command.range)

        candidate = Annotation(
            id=self._new_id(),
            range=command.range,
            layer_id=layer_id,
            created_at=self._clock(),
            payload=command.payload,
        )
        annotations = dict(self._snapshot.annotations)
        events: List[DomainEvent] = []
        stored, replaced, conflicts = self._place(command, annotations, candidate, events)
        events.append(AnnotationCreated(
            aggregate_id=stored.id,
            kind=stored.kind.value,
            range=str(stored.range),
            layer_id=stored.layer_id,
        ))
        return self._commit(
            command,
            self._snapshot.evolve(annotations=annotations),
            events,
            affected_ids=[stored.id, *replaced],
            replaced_ids=replaced,
            conflicts=conflicts,
            value=stored,
        )

    def _update_payload(self, command: UpdateAnnotationPayloadCommand) -> CommandResult:
        current = self.get(command.annotation_id)
        self._check_payload(command.payload)
        if command.payload.kind is not current.kind:
            raise AnnotationKindMismatchError(
                f"Cannot turn a {current.kind.value} into a {command.payload.kind.value}",
                field_name="payload",
                actual_value=command.payload.kind.value,
                suggestions=["delete it and create a new annotation instead"],
            )

        updated = current.with_payload(command.payload)
        annotations = dict(self._snapshot.annotations)
        annotations[updated.id] = updated
        return self._commit(
            command,
            self._snapshot.evolve(annotations=annotations),
            [AnnotationUpdated(aggregate_id=updated.id, field_updated="payload")],
            affected_ids=[updated.id],
            value=updated,
        )

    def _move_annotation(self, command: MoveAnnotationCommand) -> CommandResult:
        current = self.get(command.annotation_id)
        self._check_range(command.range)

        annotations = dict(self._snapshot.annotations)
        del annotations[current.id]
        events: List[DomainEvent] = [AnnotationDeleted(aggregate_id=current.id, reason="moved")]
        candidate = Annotation(
            id=self._new_id(),
            range=command.range,
            layer_id=current.layer_id,
            created_at=self._clock(),
            payload=current.payload,
        )
        stored, replaced, conflicts = self._place(command, annotations, candidate, events, exclude=current.id)
        events.append(AnnotationCreated(
            aggregate_id=stored.id,
            kind=stored.kind.value,
            range=str(stored.range),
            layer_id=stored.layer_id,
        ))
        return self._commit(
            command,
            self._snapshot.evolve(annotations=annotations),
            events,
            affected_ids=[current.id, stored.id, *replaced],
            replaced_ids=replaced,
            conflicts=conflicts,
            value=stored,
        )

    def _assign_layer(self, command: AssignAnnotationLayerCommand) -> CommandResult:
        current = self.get(command.annotation_id)
        self.get_layer(command.layer_id)
        if current.layer_id == command.layer_id:
            return CommandResult(command_id=command.command_id, value=current)

        annotations = dict(self._snapshot.annotations)
        del annotations[current.id]
        events: List[DomainEvent] = []
        candidate = current.with_layer(command.layer_id)
        stored, replaced, conflicts = self._place(command, annotations, candidate, events, exclude=current.id)
        if stored is candidate:
            events.append(AnnotationUpdated(aggregate_id=stored.id, field_updated="layer_id"))
        else:
            events.insert(0, AnnotationDeleted(aggregate_id=current.id, reason="merged"))
        return self._commit(
            command,
            self._snapshot.evolve(annotations=annotations),
            events,
            affected_ids=[current.id] + [i for i in [stored.id, *replaced] if i != current.id],
            replaced_ids=replaced,
            conflicts=conflicts,
            value=stored,
        )

    def _delete_annotation(self, command: DeleteAnnotationCommand) -> CommandResult:
        current = self.get(command.annotation_id)
        annotations = dict(self._snapshot.annotations)
        del annotations[current.id]
        return self._commit(
            command,
            self._snapshot.evolve(annotations=annotations),
            [AnnotationDeleted(aggregate_id=current.id)],
            affected_ids=[current.id],
            value=current,
        )

    # -------------------------------------------------------------------------
    # Layer handlers
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_layer_name(name: Optional[str]) -> None:
        if name is not None and not name.strip():
            raise MarginaliaValidationError(
                "Layer name cannot be empty",
                field_name="name",
                actual_value=name,
            )

    def _create_layer(self, command: CreateLayerCommand) -> CommandResult:
        self._check_layer_name(command.name)
        layer_id = command.layer_id or self._new_id()
        if layer_id in self._snapshot.layers:
            raise ConflictError(f"A layer with id '{layer_id}' already exists", conflicting_ids=[layer_id])

        order = command.order
        if order is None:
            order = max((layer.order for layer in self._snapshot.layers.values()), default=-1) + 1
        layer = Layer(
            id=layer_id,
            name=command.name.strip(),
            color=command.color,
            visible=command.visible,
            order=order,
        )
        layers = dict(self._snapshot.layers)
        layers[layer.id] = layer
        return self._commit(
            command,
            self._snapshot.evolve(layers=layers),
            [LayerCreated(aggregate_id=layer.id, name=layer.name)],
            affected_ids=[layer.id],
            value=layer,
        )

    def _update_layer(self, command: UpdateLayerCommand) -> CommandResult:
        current = self.get_layer(command.layer_id)
        self._check_layer_name(command.name)

        changes = {
            name: value
            for name, value in (
                ("name", command.name.strip() if command.name is not None else None),
                ("color", command.color),
                ("visible", command.visible),
                ("order", command.order),
            )
            if value is not None and getattr(current, name) != value
        }
        if not changes:
            return CommandResult(command_id=command.command_id, value=current)

        layer = Layer(**{**current.to_dict(), **changes})
        layers = dict(self._snapshot.layers)
        layers[layer.id] = layer
        return self._commit(
            command,
            self._snapshot.evolve(layers=layers),
            [LayerUpdated(aggregate_id=layer.id, fields_updated=tuple(sorted(changes)))],
            affected_ids=[layer.id],
            value=layer,
        )

    def _delete_layer(self, command: DeleteLayerCommand) -> CommandResult:
        layer = self.get_layer(command.layer_id)
        if layer.id == self.default_layer_id:
            raise ConflictError(
                f"The default layer '{layer.name}' cannot be deleted",
                conflicting_ids=[layer.id],
                suggestions=["delete or move its annotations instead"],
            )

        owned = self._snapshot.annotations_in_layer(layer.id)
        owned_ids = [a.id for a in owned]
        policy = self.config.layer_deletion_policy
        annotations = dict(self._snapshot.annotations)
        events: List[DomainEvent] = []

        if policy is LayerDeletionPolicy.CASCADE:
            if owned and not command.confirm:
                raise ConfirmationRequiredError(
                    f"Deleting layer '{layer.name}' also deletes its {len(owned)} annotation(s)",
                    conflicting_ids=owned_ids,
                    suggestions=["repeat the command with confirm=True"],
                )
            for annotation in owned:
                del annotations[annotation.id]
                events.append(AnnotationDeleted(aggregate_id=annotation.id, reason="layer deleted"))
        else:
            # Reassigned records keep id, range and payload; the overlap
            # policy does not apply to them.
            for annotation in owned:
                annotations[annotation.id] = annotation.with_layer(self.default_layer_id)
            if owned:
                events.append(AnnotationsReassigned(
                    aggregate_id=layer.id,
                    from_layer_id=layer.id,
                    to_layer_id=self.default_layer_id,
                    annotation_ids=tuple(owned_ids),
                ))

        layers = dict(self._snapshot.layers)
        del layers[layer.id]
        events.append(LayerDeleted(aggregate_id=layer.id, policy=policy.value, affected_annotations=len(owned)))
        return self._commit(
            command,
            self._snapshot.evolve(layers=layers, annotations=annotations),
            events,
            affected_ids=[layer.id, *owned_ids],
            value=layer,
        )
