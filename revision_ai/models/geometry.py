from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from io import BytesIO
from typing import TYPE_CHECKING, Any

import numpy as np
from PIL import Image

if TYPE_CHECKING:
    from revision_ai.models.markers import ImageMarker

# Backend convention: box coordinates live in a 0-1000 space per axis
NORMALIZED_SCALE = 1000.0
PNG_DATA_URI_PREFIX = "data:image/png;base64,"
DEFAULT_MODEL_VERSION = "gemini-2.5-flash"


@dataclass(frozen=True)
class BoundingBox2D:
    """Box as (y0, x0, y1, x1); normalized 0-1000 unless converted."""
    y0: float
    x0: float
    y1: float
    x1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        return ((self.x0 + self.x1) / 2, (self.y0 + self.y1) / 2)

    def to_absolute_coordinates(self, image_width: int, image_height: int) -> "BoundingBox2D":
        return BoundingBox2D(
            y0=self.y0 / NORMALIZED_SCALE * image_height,
            x0=self.x0 / NORMALIZED_SCALE * image_width,
            y1=self.y1 / NORMALIZED_SCALE * image_height,
            x1=self.x1 / NORMALIZED_SCALE * image_width,
        )

    def contains(self, x: float, y: float) -> bool:
        # Inclusive on every edge
        return self.x0 <= x <= self.x1 and self.y0 <= y <= self.y1

    @classmethod
    def from_box_2d(cls, values: list[float] | tuple[float, ...]) -> "BoundingBox2D":
        if len(values) != 4:
            raise ValueError(f"box_2d needs 4 values [y0, x0, y1, x1], got {len(values)}")
        y0, x0, y1, x1 = (float(v) for v in values)
        return cls(y0=y0, x0=x0, y1=y1, x1=x1)

    def to_box_2d(self) -> list[float]:
        return [self.y0, self.x0, self.y1, self.x1]


@dataclass(frozen=True)
class SegmentationMask:
    """
    One segmented object returned by the AI backend.

    Wire format (per mask):
        {"box_2d": [y0, x0, y1, x1], "label": "cup",
         "mask": "data:image/png;base64,...", "confidence": 0.93}
    """
    bounding_box: BoundingBox2D
    label: str
    mask_data: bytes = field(repr=False)
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "SegmentationMask":
        raw_mask = data.get("mask") or ""
        if raw_mask.startswith(PNG_DATA_URI_PREFIX):
            raw_mask = raw_mask[len(PNG_DATA_URI_PREFIX):]
        try:
            mask_bytes = base64.b64decode(raw_mask, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 mask data: {e}")

        confidence = data.get("confidence")
        return cls(
            bounding_box=BoundingBox2D.from_box_2d(data["box_2d"]),
            label=str(data["label"]),
            mask_data=mask_bytes,
            confidence=float(confidence) if confidence is not None else 1.0,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "box_2d": self.bounding_box.to_box_2d(),
            "label": self.label,
            "mask": PNG_DATA_URI_PREFIX + base64.b64encode(self.mask_data).decode("utf-8"),
            "confidence": self.confidence,
        }

    def to_absolute_coordinates(self, image_width: int, image_height: int) -> BoundingBox2D:
        return self.bounding_box.to_absolute_coordinates(image_width, image_height)

    def contains_point(self, x: float, y: float, image_width: int, image_height: int) -> bool:
        """Bounding-box membership of a pixel-space point (not mask-accurate)."""
        return self.to_absolute_coordinates(image_width, image_height).contains(x, y)

    def decode_mask(self) -> np.ndarray:
        """
        Decode the PNG probability map into a boolean raster.

        The raster covers the mask's bounding box, not the whole image.
        """
        with Image.open(BytesIO(self.mask_data)) as img:
            arr = np.array(img.convert("L"))
        return arr > 127

    def coverage(self) -> float:
        """Fraction of set pixels inside the mask raster."""
        mask = self.decode_mask()
        if mask.size == 0:
            return 0.0
        return float(mask.sum()) / mask.size


@dataclass(frozen=True)
class SegmentationStats:
    total_masks: int
    average_confidence: float
    unique_labels: tuple[str, ...]
    total_area: float

    def __str__(self) -> str:
        return (
            f"SegmentationStats(masks: {self.total_masks}, "
            f"avgConfidence: {self.average_confidence:.2f}, "
            f"labels: {len(self.unique_labels)}, "
            f"area: {self.total_area:.1f})"
        )


@dataclass(frozen=True)
class SegmentationResult:
    masks: tuple[SegmentationMask, ...]
    processing_time_ms: int
    image_width: int
    image_height: int
    model_version: str = DEFAULT_MODEL_VERSION
    confidence: float = 0.0

    @classmethod
    def from_json(
        cls,
        data: dict[str, Any],
        image_width: int,
        image_height: int,
        processing_time_ms: int,
    ) -> "SegmentationResult":
        masks = tuple(SegmentationMask.from_json(m) for m in data.get("masks") or [])
        confidence = data.get("confidence")
        if confidence is None:
            confidence = sum(m.confidence for m in masks) / len(masks) if masks else 0.0
        return cls(
            masks=masks,
            processing_time_ms=processing_time_ms,
            image_width=image_width,
            image_height=image_height,
            model_version=data.get("modelVersion") or DEFAULT_MODEL_VERSION,
            confidence=float(confidence),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "masks": [m.to_json() for m in self.masks],
            "processingTimeMs": self.processing_time_ms,
            "imageWidth": self.image_width,
            "imageHeight": self.image_height,
            "modelVersion": self.model_version,
            "confidence": self.confidence,
        }

    def masks_by_label(self, label: str) -> list[SegmentationMask]:
        needle = label.lower()
        return [m for m in self.masks if needle in m.label.lower()]

    def masks_at_point(self, x: float, y: float) -> list[SegmentationMask]:
        return [
            m for m in self.masks
            if m.contains_point(x, y, self.image_width, self.image_height)
        ]

    def largest_mask(self) -> SegmentationMask | None:
        if not self.masks:
            return None
        return max(self.masks, key=lambda m: m.bounding_box.area)

    def high_confidence_masks(self, threshold: float = 0.7) -> list[SegmentationMask]:
        return [m for m in self.masks if m.confidence >= threshold]

    def stats(self, absolute: bool = False) -> SegmentationStats:
        """
        Summary statistics in a single pass.

        ``total_area`` is measured in normalized 0-1000 units unless
        ``absolute`` is set, in which case every box is first rescaled to
        pixels. The two spaces are never mixed.
        """
        confidence_sum = 0.0
        area_sum = 0.0
        labels: dict[str, None] = {}

        for mask in self.masks:
            confidence_sum += mask.confidence
            box = mask.bounding_box
            if absolute:
                box = box.to_absolute_coordinates(self.image_width, self.image_height)
            area_sum += box.area
            labels.setdefault(mask.label, None)

        count = len(self.masks)
        return SegmentationStats(
            total_masks=count,
            average_confidence=confidence_sum / count if count else 0.0,
            unique_labels=tuple(labels),
            total_area=area_sum,
        )

    def to_markers(self) -> list["ImageMarker"]:
        """Turn every mask into an ``aiSegmentation`` marker for the next request."""
        from revision_ai.models.markers import ImageMarker

        return [
            ImageMarker.ai_segmentation(mask, marker_id=f"seg-{idx}")
            for idx, mask in enumerate(self.masks)
        ]

    def __str__(self) -> str:
        return (
            f"SegmentationResult(masks: {len(self.masks)}, "
            f"confidence: {self.confidence:.2f}, "
            f"processingTime: {self.processing_time_ms}ms)"
        )
