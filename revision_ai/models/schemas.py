from __future__ import annotations

from pydantic import BaseModel, Field

from revision_ai.models.context import PerformancePriority, ProcessingType, QualityLevel
from revision_ai.models.domain import AnnotationKind, PipelineStatus, ProcessingStage
from revision_ai.models.markers import MarkerOrigin


class Box2D(BaseModel):
    y0: float
    x0: float
    y1: float
    x1: float


class MarkerIn(BaseModel):
    """A marker supplied by the client (normalized coordinates)."""
    id: str
    label: str = ""
    origin: MarkerOrigin = MarkerOrigin.USER_POINT
    x: float | None = Field(default=None, ge=0.0, le=1.0)
    y: float | None = Field(default=None, ge=0.0, le=1.0)
    box_2d: list[float] | None = None  # [y0, x0, y1, x1], 0-1000
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    mask: str | None = None  # data:image/png;base64,... (aiSegmentation only)


class AnnotationIn(BaseModel):
    id: str
    kind: AnnotationKind = AnnotationKind.POINT
    label: str = ""
    points: list[tuple[float, float]] = Field(default_factory=list)


class ContextRequest(BaseModel):
    processing_type: ProcessingType = ProcessingType.ENHANCE
    quality_level: QualityLevel = QualityLevel.STANDARD
    performance_priority: PerformancePriority = PerformancePriority.BALANCED
    markers: list[MarkerIn] = Field(default_factory=list)
    annotations: list[AnnotationIn] = Field(default_factory=list)
    prompt_instructions: str | None = None
    edit_instructions: str | None = None
    custom_instructions: str | None = None
    target_format: str | None = None


class MarkerOut(BaseModel):
    id: str
    label: str
    origin: MarkerOrigin
    x: float | None = None
    y: float | None = None
    box_2d: Box2D | None = None
    confidence: float | None = None


class ContextOut(BaseModel):
    processing_type: ProcessingType
    quality_level: QualityLevel
    performance_priority: PerformancePriority
    markers: list[MarkerOut] = Field(default_factory=list)
    custom_instructions: str | None = None
    target_format: str | None = None
    prompt_instructions: str | None = None
    edit_instructions: str | None = None


class ContextValidationResponse(BaseModel):
    """Validity of the requested combination and what the builder makes of it"""
    is_valid: bool
    recommended_type: ProcessingType
    context: ContextOut


class MaskOut(BaseModel):
    label: str
    confidence: float
    box_2d: Box2D
    absolute_box: Box2D
    coverage: float | None = None


class SegmentationStatsOut(BaseModel):
    total_masks: int
    average_confidence: float
    unique_labels: list[str] = Field(default_factory=list)
    total_area: float
    area_space: str = "normalized"


class SegmentationResponse(BaseModel):
    masks: list[MaskOut] = Field(default_factory=list)
    stats: SegmentationStatsOut
    markers: list[MarkerOut] = Field(default_factory=list)
    image_width: int
    image_height: int
    processing_time_ms: int
    model_version: str


class ProgressOut(BaseModel):
    stage: ProcessingStage
    progress: float
    message: str


class ProcessingResultOut(BaseModel):
    job_id: str | None
    original_prompt: str
    enhanced_prompt: str
    processing_time_ms: float
    image_base64: str
    segmentation: SegmentationResponse | None = None


class PipelineStateResponse(BaseModel):
    """Snapshot of a pipeline; which optional fields are set depends on status"""
    session_id: str | None = None
    status: PipelineStatus
    progress: ProgressOut | None = None
    can_cancel: bool = False
    result: ProcessingResultOut | None = None
    error: str | None = None
    error_type: str | None = None
    cancel_reason: str | None = None
    busy: bool = False
    history: list[PipelineStatus] = Field(default_factory=list)


class SessionCreatedResponse(BaseModel):
    session_id: str
    state: PipelineStateResponse


class HitTestRequest(BaseModel):
    """Which markers sit under a pixel position on an image of the given size"""
    markers: list[MarkerIn] = Field(default_factory=list)
    annotations: list[AnnotationIn] = Field(default_factory=list)
    x: float = Field(ge=0.0)
    y: float = Field(ge=0.0)
    image_width: int = Field(gt=0)
    image_height: int = Field(gt=0)


class HitTestResponse(BaseModel):
    hits: list[MarkerOut] = Field(default_factory=list)
    hit_radius_px: float
