"""
Marginalia - Annotation Snapshot

Immutable view of every layer and annotation at one commit. The store
replaces its snapshot wholesale on each commit, so a reader holding a
snapshot (search, export, save) never observes a half-applied edit.
"""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from domain.canon import BookId
from domain.entities import (
    AddressRange,
    Annotation,
    AnnotationKind,
    Layer,
)


@dataclass(frozen=True)
class AnnotationSnapshot:
    """
    Frozen layers and annotations plus a per-book index sorted by start.

    Attributes:
        layers: Layer id to layer
        annotations: Annotation id to annotation
        version: Commit counter, incremented by every committed command
    """
    layers: Mapping[str, Layer] = field(default_factory=dict)
    annotations: Mapping[str, Annotation] = field(default_factory=dict)
    version: int = 0
    _by_book: Mapping[BookId, Tuple[Annotation, ...]] = field(
        init=False, repr=False, compare=False, default_factory=dict,
    )
    _starts: Mapping[BookId, Tuple[Tuple[int, int, int], ...]] = field(
        init=False, repr=False, compare=False, default_factory=dict,
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "layers", MappingProxyType(dict(self.layers)))
        object.__setattr__(self, "annotations", MappingProxyType(dict(self.annotations)))

        by_book: Dict[BookId, List[Annotation]] = {}
        for annotation in self.annotations.values():
            by_book.setdefault(annotation.range.book, []).append(annotation)
        ordered = {
            book: tuple(sorted(items, key=lambda a: (a.range.sort_key(), a.created_at, a.id)))
            for book, items in by_book.items()
        }
        object.__setattr__(self, "_by_book", MappingProxyType(ordered))
        object.__setattr__(self, "_starts", MappingProxyType({
            book: tuple(a.range.start.sort_key() for a in items) for book, items in ordered.items()
        }))

    def evolve(
        self,
        layers: Optional[Mapping[str, Layer]] = None,
        annotations: Optional[Mapping[str, Annotation]] = None,
    ) -> "AnnotationSnapshot":
        """Next snapshot with the given parts replaced."""
        return AnnotationSnapshot(
            layers=self.layers if layers is None else layers,
            annotations=self.annotations if annotations is None else annotations,
            version=self.version + 1,
        )

    def __len__(self) -> int:
        return len(self.annotations)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(self.annotations.values())

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, annotation_id: str) -> Optional[Annotation]:
        return self.annotations.get(annotation_id)

    def layer(self, layer_id: str) -> Optional[Layer]:
        return self.layers.get(layer_id)

    def ordered_layers(self) -> List[Layer]:
        """Layers by stacking order, then id."""
        return sorted(self.layers.values(), key=lambda layer: (layer.order, layer.id))

    def _sort_key(self, annotation: Annotation):
        layer = self.layers.get(annotation.layer_id)
        order = layer.order if layer is not None else 0
        return (order, annotation.range.sort_key(), annotation.created_at, annotation.id)

    def annotations_overlapping(
        self,
        reference: AddressRange,
        layer_id: Optional[str] = None,
        kind: Optional[AnnotationKind] = None,
    ) -> List[Annotation]:
        """
        Annotations whose range overlaps ``reference``.

        Ordered by (layer order, start, end, created_at, id).
        """
        items = self._by_book.get(reference.book, ())
        stop = bisect_right(self._starts.get(reference.book, ()), reference.end.sort_key())
        found = [
            annotation
            for annotation in items[:stop]
            if annotation.range.end >= reference.start
            and (layer_id is None or annotation.layer_id == layer_id)
            and (kind is None or annotation.kind is kind)
        ]
        return sorted(found, key=self._sort_key)

    def visible_annotations_overlapping(self, reference: AddressRange) -> List[Annotation]:
        """Same as annotations_overlapping, restricted to visible layers."""
        return [
            annotation
            for annotation in self.annotations_overlapping(reference)
            if self.layers[annotation.layer_id].visible
        ]

    def annotations_in_layer(self, layer_id: str) -> List[Annotation]:
        """Annotations of one layer in address order."""
        return sorted(
            (a for a in self.annotations.values() if a.layer_id == layer_id),
            key=self._sort_key,
        )

    def annotations_of_kind(self, kind: AnnotationKind) -> List[Annotation]:
        return sorted(
            (a for a in self.annotations.values() if a.kind is kind),
            key=lambda a: (a.range.sort_key(), a.created_at, a.id),
        )
