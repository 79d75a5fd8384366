"""
Marginalia - Domain Events

Immutable records of committed changes, returned in every CommandResult and
delivered to store subscribers after the commit they describe.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """
    Base class for domain events.

    ``aggregate_id`` names the record the event is about (annotation,
    layer or collection id).
    """
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    aggregate_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "data": self._event_data(),
        }

    def _event_data(self) -> Dict[str, Any]:
        """Override in subclasses to provide event-specific data."""
        return {}


# Annotation Events
@dataclass(frozen=True)
class AnnotationCreated(DomainEvent):
    kind: str = ""
    range: str = ""
    layer_id: str = ""

    def _event_data(self) -> Dict[str, Any]:
        return {"kind": self.kind, "range": self.range, "layer_id": self.layer_id}


@dataclass(frozen=True)
class AnnotationUpdated(DomainEvent):
    """Payload or layer of an annotation changed; id and range did not."""
    field_updated: str = ""

    def _event_data(self) -> Dict[str, Any]:
        return {"field_updated": self.field_updated}


@dataclass(frozen=True)
class AnnotationDeleted(DomainEvent):
    reason: str = "deleted"

    def _event_data(self) -> Dict[str, Any]:
        return {"reason": self.reason}


@dataclass(frozen=True)
class AnnotationsMerged(DomainEvent):
    """Same-layer, same-kind overlapping annotations were merged into one."""
    replaced_ids: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {"replaced_ids": list(self.replaced_ids)}


# Layer Events
@dataclass(frozen=True)
class LayerCreated(DomainEvent):
    name: str = ""

    def _event_data(self) -> Dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True)
class LayerUpdated(DomainEvent):
    fields_updated: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {"fields_updated": list(self.fields_updated)}


@dataclass(frozen=True)
class LayerDeleted(DomainEvent):
    """A layer was removed; ``policy`` says what happened to its annotations."""
    policy: str = ""
    affected_annotations: int = 0

    def _event_data(self) -> Dict[str, Any]:
        return {"policy": self.policy, "affected_annotations": self.affected_annotations}


@dataclass(frozen=True)
class AnnotationsReassigned(DomainEvent):
    from_layer_id: str = ""
    to_layer_id: str = ""
    annotation_ids: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {
            "from_layer_id": self.from_layer_id,
            "to_layer_id": self.to_layer_id,
            "annotation_ids": list(self.annotation_ids),
        }


# Collection Events
@dataclass(frozen=True)
class CollectionCreated(DomainEvent):
    title: str = ""

    def _event_data(self) -> Dict[str, Any]:
        return {"title": self.title}


@dataclass(frozen=True)
class CollectionUpdated(DomainEvent):
    fields_updated: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {"fields_updated": list(self.fields_updated)}


@dataclass(frozen=True)
class CollectionDeleted(DomainEvent):
    pass


@dataclass(frozen=True)
class CardAdded(DomainEvent):
    card_id: str = ""
    position: int = 0

    def _event_data(self) -> Dict[str, Any]:
        return {"card_id": self.card_id, "position": self.position}


@dataclass(frozen=True)
class CardUpdated(DomainEvent):
    card_id: str = ""
    fields_updated: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {"card_id": self.card_id, "fields_updated": list(self.fields_updated)}


@dataclass(frozen=True)
class CardRemoved(DomainEvent):
    card_id: str = ""

    def _event_data(self) -> Dict[str, Any]:
        return {"card_id": self.card_id}


@dataclass(frozen=True)
class CardMoved(DomainEvent):
    card_id: str = ""
    from_position: int = 0
    to_position: int = 0

    def _event_data(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "from_position": self.from_position,
            "to_position": self.to_position,
        }


@dataclass(frozen=True)
class CollectionImported(DomainEvent):
    accepted: int = 0
    rejected: int = 0
    created: bool = False

    def _event_data(self) -> Dict[str, Any]:
        return {"accepted": self.accepted, "rejected": self.rejected, "created": self.created}
