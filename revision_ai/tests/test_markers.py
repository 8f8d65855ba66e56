import pytest

from revision_ai.models.domain import Annotation, AnnotationKind
from revision_ai.models.geometry import BoundingBox2D, SegmentationMask
from revision_ai.models.markers import ImageMarker, MarkerOrigin
from revision_ai.services.annotations import annotations_to_markers, parse_annotations


def test_user_point_hit_radius():
    marker = ImageMarker.user_point("p1", 0.5, 0.5)
    assert marker.contains_point(510, 510, 1000, 1000)
    assert not marker.contains_point(520, 520, 1000, 1000)
    assert marker.contains_point(520, 520, 1000, 1000, hit_radius=30)


def test_user_point_coordinates_are_validated():
    with pytest.raises(ValueError):
        ImageMarker.user_point("p1", 1.2, 0.5)


def test_detection_marker_uses_absolute_box():
    marker = ImageMarker.object_detection("d1", BoundingBox2D(0, 0, 500, 500), 0.8, "dog")
    assert marker.contains_point(320, 240, 640, 480)
    assert not marker.contains_point(321, 240, 640, 480)


def test_segmentation_marker_requires_mask():
    with pytest.raises(ValueError):
        ImageMarker(id="s1", label="x", origin=MarkerOrigin.AI_SEGMENTATION, bounding_box=BoundingBox2D(0, 0, 1, 1))

    mask = SegmentationMask(BoundingBox2D(0, 0, 100, 100), "cup", b"png", 0.7)
    marker = ImageMarker.ai_segmentation(mask, marker_id="s1")
    assert marker.label == "cup"
    assert marker.confidence == 0.7


def test_ai_map_shape():
    point = ImageMarker.user_point("p1", 0.25, 0.75, label="spot").to_ai_map()
    assert point == {"id": "p1", "label": "spot", "origin": "userPoint", "x": 0.25, "y": 0.75}

    box = ImageMarker.object_detection("d1", BoundingBox2D(1, 2, 3, 4), 0.5, "dog").to_ai_map()
    assert box["box_2d"] == [1, 2, 3, 4]
    assert box["confidence"] == 0.5


def test_annotations_become_user_points():
    annotations = [
        Annotation(id="a", points=((0.1, 0.2),)),
        Annotation(id="b", points=((0.3, 0.4), (0.5, 0.6)), kind=AnnotationKind.STROKE, label="line"),
    ]
    markers = annotations_to_markers(annotations)
    assert [m.id for m in markers] == ["a", "b-0", "b-1"]
    assert all(m.origin is MarkerOrigin.USER_POINT for m in markers)
    assert (markers[2].x, markers[2].y) == (0.5, 0.6)
    assert markers[1].label == "line"


def test_parse_annotations_from_json():
    parsed = parse_annotations([
        {"id": "a1", "kind": "stroke", "label": "cup", "points": [[0.1, 0.2], [0.2, 0.3]]},
        {"points": [[0.9, 0.9]]},
    ])
    assert parsed[0].kind is AnnotationKind.STROKE
    assert parsed[1].id == "annotation-1"

    with pytest.raises(ValueError):
        parse_annotations([{"id": "bad", "points": [[0.1, 0.1], [0.2, 0.2]]}])
