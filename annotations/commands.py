"""
Marginalia - Annotation Commands

Request objects accepted by AnnotationStore.execute().
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.commands import BaseCommand
from domain.entities import AddressRange, Payload


# ==================== Annotation Commands ====================

@dataclass(frozen=True, kw_only=True)
class CreateAnnotationCommand(BaseCommand):
    """
    Create a highlight, note or bookmark.

    Args:
        range: Validated address range to anchor to
        payload: HighlightPayload, NotePayload or BookmarkPayload
        layer_id: Target layer; the default layer when omitted
    """
    range: AddressRange
    payload: Payload
    layer_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class UpdateAnnotationPayloadCommand(BaseCommand):
    """Replace the payload; id, range and kind never change."""
    annotation_id: str
    payload: Payload


@dataclass(frozen=True, kw_only=True)
class MoveAnnotationCommand(BaseCommand):
    """
    Re-anchor an annotation.

    Modeled as delete followed by create: the result carries the new record
    under a new id.
    """
    annotation_id: str
    range: AddressRange


@dataclass(frozen=True, kw_only=True)
class AssignAnnotationLayerCommand(BaseCommand):
    annotation_id: str
    layer_id: str


@dataclass(frozen=True, kw_only=True)
class DeleteAnnotationCommand(BaseCommand):
    annotation_id: str


# ==================== Layer Commands ====================

@dataclass(frozen=True, kw_only=True)
class CreateLayerCommand(BaseCommand):
    """
    Create a layer.

    Args:
        name: Display name (required)
        color: Colour token used by the renderer
        visible: Initial visibility
        order: Stacking order; after every existing layer when omitted
        layer_id: Explicit id; generated when omitted
    """
    name: str
    color: str = "yellow"
    visible: bool = True
    order: Optional[int] = None
    layer_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class UpdateLayerCommand(BaseCommand):
    """Fields left as None keep their current value."""
    layer_id: str
    name: Optional[str] = None
    color: Optional[str] = None
    visible: Optional[bool] = None
    order: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class DeleteLayerCommand(BaseCommand):
    """
    Delete a layer.

    What happens to its annotations is decided by the store's layer
    deletion policy; ``confirm`` is required when that policy deletes them.
    """
    layer_id: str
    confirm: bool = False
