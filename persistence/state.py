"""
Marginalia - Session State Document

Layers, annotations and collections as one versioned JSON document.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from annotations.snapshot import AnnotationSnapshot
from core.errors import PersistenceError
from domain.entities import Annotation, Collection, Layer

STATE_VERSION = 1


class StateDocument(BaseModel):
    """Top-level shape of a saved session; records are checked on rebuild."""

    model_config = ConfigDict(extra="ignore")

    version: int = Field(..., ge=1, le=STATE_VERSION)
    translation: str = Field(..., min_length=1)
    layers: List[Dict[str, Any]] = Field(default_factory=list)
    annotations: List[Dict[str, Any]] = Field(default_factory=list)
    collections: List[Dict[str, Any]] = Field(default_factory=list)


@dataclass(frozen=True)
class SessionState:
    """Everything a session persists."""
    translation: str
    annotations: AnnotationSnapshot
    collections: Mapping[str, Collection]

    def to_document(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "translation": self.translation,
            "layers": [layer.to_dict() for layer in self.annotations.ordered_layers()],
            "annotations": [
                annotation.to_dict()
                for annotation in sorted(
                    self.annotations,
                    key=lambda a: (a.range.sort_key(), a.created_at, a.id),
                )
            ],
            "collections": [
                collection.to_dict()
                for collection in sorted(self.collections.values(), key=lambda c: c.id)
            ],
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any], path: Optional[str] = None) -> "SessionState":
        """
        Rebuild state from a saved document.

        Raises:
            PersistenceError: the document is malformed
        """
        try:
            parsed = StateDocument.model_validate(document)
            layers = [Layer.from_dict(item) for item in parsed.layers]
            annotations = [Annotation.from_dict(item) for item in parsed.annotations]
            collections = [Collection.from_dict(item) for item in parsed.collections]
        except ValidationError as e:
            raise PersistenceError(
                f"Saved session is invalid: {e.error_count()} problem(s)",
                path=path,
                cause=e,
            ) from e
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Saved session is invalid: {e}", path=path, cause=e) from e

        return cls(
            translation=parsed.translation,
            annotations=AnnotationSnapshot(
                layers={layer.id: layer for layer in layers},
                annotations={annotation.id: annotation for annotation in annotations},
            ),
            collections={collection.id: collection for collection in collections},
        )
