from __future__ import annotations

from typing import Any, Iterable

from revision_ai.models.domain import Annotation, AnnotationKind
from revision_ai.models.markers import ImageMarker


def annotations_to_markers(annotations: Iterable[Annotation]) -> list[ImageMarker]:
    """
    One ``userPoint`` marker per annotation point, in drawing order.

    Coordinates pass through unchanged (both sides are normalized [0, 1]).
    """
    markers: list[ImageMarker] = []
    for annotation in annotations:
        if annotation.kind is AnnotationKind.POINT:
            x, y = annotation.points[0]
            markers.append(ImageMarker.user_point(annotation.id, x, y, label=annotation.label))
            continue
        for idx, (x, y) in enumerate(annotation.points):
            markers.append(
                ImageMarker.user_point(f"{annotation.id}-{idx}", x, y, label=annotation.label)
            )
    return markers


def parse_annotations(payload: list[dict[str, Any]]) -> list[Annotation]:
    """
    Build annotations from their JSON form:
    ``[{"id": "a1", "kind": "stroke", "label": "cup", "points": [[0.1, 0.2], ...]}]``
    """
    annotations = []
    for idx, item in enumerate(payload):
        points = tuple((float(p[0]), float(p[1])) for p in item.get("points") or [])
        annotations.append(
            Annotation(
                id=str(item.get("id") or f"annotation-{idx}"),
                points=points,
                kind=AnnotationKind(item.get("kind", AnnotationKind.POINT.value)),
                label=str(item.get("label") or ""),
            )
        )
    return annotations
