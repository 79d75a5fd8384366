"""
Marginalia - Annotation Store

Highlights, notes and bookmarks on named layers, edited through commands.
"""
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
from annotations.store import AnnotationStore, merge_payloads

__all__ = [
    "AnnotationStore",
    "AnnotationSnapshot",
    "merge_payloads",
    "CreateAnnotationCommand",
    "UpdateAnnotationPayloadCommand",
    "MoveAnnotationCommand",
    "AssignAnnotationLayerCommand",
    "DeleteAnnotationCommand",
    "CreateLayerCommand",
    "UpdateLayerCommand",
    "DeleteLayerCommand",
]
