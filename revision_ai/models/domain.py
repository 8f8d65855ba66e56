from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Union

from revision_ai.core.errors import ProcessingError
from revision_ai.models.geometry import SegmentationResult


@dataclass(frozen=True)
class SelectedImage:
    """Image picked by the user: raw bytes, a filesystem path, or both."""
    name: str = "image"
    data: bytes | None = field(default=None, repr=False)
    path: Path | None = None
    declared_size: int | None = None

    @property
    def has_source(self) -> bool:
        return self.data is not None or self.path is not None


class AnnotationKind(str, Enum):
    POINT = "point"
    STROKE = "stroke"


@dataclass(frozen=True)
class Annotation:
    """User annotation; points are normalized [0, 1] image coordinates."""
    id: str
    points: tuple[tuple[float, float], ...]
    kind: AnnotationKind = AnnotationKind.POINT
    label: str = ""

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError(f"Annotation {self.id} has no points")
        if self.kind is AnnotationKind.POINT and len(self.points) != 1:
            raise ValueError(f"Point annotation {self.id} must have exactly one point")
        for x, y in self.points:
            if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
                raise ValueError(f"Annotation {self.id} point ({x}, {y}) is outside [0, 1]")


class ProcessingStage(str, Enum):
    ANALYZING = "analyzing"
    PROMPT_ENGINEERING = "promptEngineering"
    AI_PROCESSING = "aiProcessing"
    POST_PROCESSING = "postProcessing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ProcessingProgress:
    stage: ProcessingStage
    progress: float  # 0.0 to 1.0
    message: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.progress <= 1.0:
            raise ValueError(f"progress must be in [0, 1], got {self.progress}")


@dataclass(frozen=True)
class ProcessingResult:
    processed_image_data: bytes = field(repr=False)
    original_prompt: str
    enhanced_prompt: str
    processing_time: timedelta
    job_id: str | None = None
    segmentation: SegmentationResult | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ----------------------------
# Pipeline state (closed set of variants)
# ----------------------------

class PipelineStatus(str, Enum):
    INITIAL = "initial"
    IN_PROGRESS = "inProgress"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PipelineInitial:
    status = PipelineStatus.INITIAL


@dataclass(frozen=True)
class PipelineInProgress:
    progress: ProcessingProgress
    can_cancel: bool = True
    status = PipelineStatus.IN_PROGRESS


@dataclass(frozen=True)
class PipelineSuccess:
    result: ProcessingResult
    original_image: SelectedImage
    status = PipelineStatus.SUCCESS


@dataclass(frozen=True)
class PipelineError:
    message: str
    original_image: SelectedImage | None
    error: ProcessingError | None = None
    status = PipelineStatus.ERROR


@dataclass(frozen=True)
class PipelineCancelled:
    reason: str | None = None
    status = PipelineStatus.CANCELLED


PipelineState = Union[
    PipelineInitial,
    PipelineInProgress,
    PipelineSuccess,
    PipelineError,
    PipelineCancelled,
]

TERMINAL_STATUSES = frozenset({
    PipelineStatus.SUCCESS,
    PipelineStatus.ERROR,
    PipelineStatus.CANCELLED,
})


def is_terminal(state: PipelineState) -> bool:
    return state.status in TERMINAL_STATUSES
