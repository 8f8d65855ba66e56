from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from revision_ai.models.markers import ImageMarker

MIN_CUSTOM_INSTRUCTIONS_LENGTH = 10


class ProcessingType(str, Enum):
    ENHANCE = "enhance"
    ARTISTIC = "artistic"
    RESTORATION = "restoration"
    COLOR_CORRECTION = "colorCorrection"
    OBJECT_REMOVAL = "objectRemoval"
    BACKGROUND_CHANGE = "backgroundChange"
    FACE_EDIT = "faceEdit"
    SEGMENTATION = "segmentation"
    OBJECT_DETECTION = "objectDetection"
    CUSTOM = "custom"

    @property
    def requires_markers(self) -> bool:
        return self in (ProcessingType.OBJECT_REMOVAL, ProcessingType.BACKGROUND_CHANGE)

    @property
    def produces_masks(self) -> bool:
        return self in (ProcessingType.SEGMENTATION, ProcessingType.OBJECT_DETECTION)


class QualityLevel(str, Enum):
    DRAFT = "draft"
    STANDARD = "standard"
    HIGH = "high"
    PROFESSIONAL = "professional"


class PerformancePriority(str, Enum):
    SPEED = "speed"
    BALANCED = "balanced"
    QUALITY = "quality"


@dataclass(frozen=True)
class ProcessingContext:
    """
    How an image should be processed.

    A context built by ``ProcessingContextBuilder`` has ``validated=True``
    and a consistent type/quality/priority/markers combination. A context
    constructed directly is untrusted until it goes through the builder.
    """
    processing_type: ProcessingType
    quality_level: QualityLevel
    performance_priority: PerformancePriority
    markers: tuple[ImageMarker, ...] = ()
    custom_instructions: str | None = None
    target_format: str | None = None
    # System instructions for the prompt-generation (analyze) model
    prompt_system_instructions: str | None = None
    # System instructions for the image-editing (generate) model
    edit_system_instructions: str | None = None
    validated: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.markers, tuple):
            object.__setattr__(self, "markers", tuple(self.markers))
        if self.processing_type is ProcessingType.CUSTOM and (
            not self.custom_instructions
            or len(self.custom_instructions) < MIN_CUSTOM_INSTRUCTIONS_LENGTH
        ):
            raise ValueError(
                "Custom processing type requires detailed instructions "
                f"(min {MIN_CUSTOM_INSTRUCTIONS_LENGTH} characters)"
            )

    @classmethod
    def quick_enhance(cls) -> "ProcessingContext":
        return cls(
            processing_type=ProcessingType.ENHANCE,
            quality_level=QualityLevel.STANDARD,
            performance_priority=PerformancePriority.SPEED,
        )

    @classmethod
    def professional_edit(
        cls,
        processing_type: ProcessingType,
        markers: tuple[ImageMarker, ...] | list[ImageMarker] = (),
    ) -> "ProcessingContext":
        return cls(
            processing_type=processing_type,
            quality_level=QualityLevel.PROFESSIONAL,
            performance_priority=PerformancePriority.QUALITY,
            markers=tuple(markers),
        )

    @classmethod
    def artistic_transform(
        cls,
        quality: QualityLevel = QualityLevel.HIGH,
        custom_style: str | None = None,
    ) -> "ProcessingContext":
        return cls(
            processing_type=ProcessingType.ARTISTIC,
            quality_level=quality,
            performance_priority=PerformancePriority.BALANCED,
            custom_instructions=custom_style,
        )

    @classmethod
    def restoration(cls) -> "ProcessingContext":
        return cls(
            processing_type=ProcessingType.RESTORATION,
            quality_level=QualityLevel.HIGH,
            performance_priority=PerformancePriority.QUALITY,
        )

    def copy_with(self, **changes: Any) -> "ProcessingContext":
        # Any change invalidates a previous builder pass
        changes.setdefault("validated", False)
        return replace(self, **changes)

    def marked_areas(self) -> list[dict[str, Any]]:
        return [m.to_ai_map() for m in self.markers]
