from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from revision_ai.models.geometry import BoundingBox2D, SegmentationMask

# Default tolerance for hit-testing a user-drawn point, in pixels
DEFAULT_HIT_RADIUS_PX = 20.0


class MarkerOrigin(str, Enum):
    USER_POINT = "userPoint"
    OBJECT_DETECTION = "objectDetection"
    AI_SEGMENTATION = "aiSegmentation"


@dataclass(frozen=True)
class ImageMarker:
    """
    Region of interest on an image, tagged by where it came from.

    - ``userPoint``: ``x``/``y`` in normalized [0, 1] image coordinates.
    - ``objectDetection``: ``bounding_box`` (0-1000 space) and ``confidence``.
    - ``aiSegmentation``: as above plus the backend ``mask``.

    Use the factory classmethods rather than the constructor.
    """
    id: str
    label: str
    origin: MarkerOrigin
    x: float | None = None
    y: float | None = None
    bounding_box: BoundingBox2D | None = None
    confidence: float | None = None
    mask: SegmentationMask | None = None

    def __post_init__(self) -> None:
        if self.origin is MarkerOrigin.USER_POINT:
            if self.x is None or self.y is None:
                raise ValueError("userPoint markers need x and y")
            if not (0.0 <= self.x <= 1.0 and 0.0 <= self.y <= 1.0):
                raise ValueError(f"userPoint coordinates must be in [0, 1], got ({self.x}, {self.y})")
        else:
            if self.bounding_box is None:
                raise ValueError(f"{self.origin.value} markers need a bounding box")
            if self.origin is MarkerOrigin.AI_SEGMENTATION and self.mask is None:
                raise ValueError("aiSegmentation markers need a mask")

    @classmethod
    def user_point(cls, marker_id: str, x: float, y: float, label: str = "") -> "ImageMarker":
        return cls(id=marker_id, label=label, origin=MarkerOrigin.USER_POINT, x=x, y=y)

    @classmethod
    def object_detection(
        cls,
        marker_id: str,
        bounding_box: BoundingBox2D,
        confidence: float,
        label: str,
    ) -> "ImageMarker":
        return cls(
            id=marker_id,
            label=label,
            origin=MarkerOrigin.OBJECT_DETECTION,
            bounding_box=bounding_box,
            confidence=confidence,
        )

    @classmethod
    def ai_segmentation(cls, mask: SegmentationMask, marker_id: str) -> "ImageMarker":
        return cls(
            id=marker_id,
            label=mask.label,
            origin=MarkerOrigin.AI_SEGMENTATION,
            bounding_box=mask.bounding_box,
            confidence=mask.confidence,
            mask=mask,
        )

    def contains_point(
        self,
        x: float,
        y: float,
        image_width: int,
        image_height: int,
        hit_radius: float = DEFAULT_HIT_RADIUS_PX,
    ) -> bool:
        """
        Hit-test a pixel-space point.

        User points use proximity (within ``hit_radius`` pixels); detection and
        segmentation markers use inclusive bounding-box membership, so a
        segmentation hit does not imply the point lies on the mask itself.
        """
        if self.origin is MarkerOrigin.USER_POINT:
            px = self.x * image_width
            py = self.y * image_height
            return math.hypot(x - px, y - py) <= hit_radius

        box = self.bounding_box.to_absolute_coordinates(image_width, image_height)
        return box.contains(x, y)

    def to_ai_map(self) -> dict[str, Any]:
        """Marker as sent to the backend's analyze call."""
        data: dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "origin": self.origin.value,
        }
        if self.origin is MarkerOrigin.USER_POINT:
            data["x"] = self.x
            data["y"] = self.y
        else:
            data["box_2d"] = self.bounding_box.to_box_2d()
            data["confidence"] = self.confidence
        return data
