from __future__ import annotations

import base64

from loguru import logger

from revision_ai.core.errors import BadRequest
from revision_ai.models.context import ProcessingContext
from revision_ai.models.domain import (
    PipelineCancelled,
    PipelineError,
    PipelineInProgress,
    PipelineState,
    PipelineSuccess,
    ProcessingResult,
)
from revision_ai.models.geometry import BoundingBox2D, SegmentationMask, SegmentationResult
from revision_ai.models.markers import ImageMarker, MarkerOrigin
from revision_ai.models.schemas import (
    Box2D,
    ContextOut,
    ContextRequest,
    MarkerIn,
    MarkerOut,
    MaskOut,
    PipelineStateResponse,
    ProcessingResultOut,
    ProgressOut,
    SegmentationResponse,
    SegmentationStatsOut,
)
from revision_ai.services.annotations import annotations_to_markers, parse_annotations
from revision_ai.services.context_builder import ProcessingContextBuilder


# ----------------------------
# Requests -> domain
# ----------------------------

def marker_from_schema(marker: MarkerIn) -> ImageMarker:
    try:
        if marker.origin is MarkerOrigin.USER_POINT:
            if marker.x is None or marker.y is None:
                raise BadRequest(f"Marker {marker.id}: userPoint markers need x and y")
            return ImageMarker.user_point(marker.id, marker.x, marker.y, label=marker.label)

        if marker.box_2d is None:
            raise BadRequest(f"Marker {marker.id}: {marker.origin.value} markers need box_2d")
        box = BoundingBox2D.from_box_2d(marker.box_2d)
        confidence = marker.confidence if marker.confidence is not None else 1.0

        if marker.origin is MarkerOrigin.OBJECT_DETECTION:
            return ImageMarker.object_detection(marker.id, box, confidence, marker.label)

        if not marker.mask:
            raise BadRequest(f"Marker {marker.id}: aiSegmentation markers need a mask")
        mask = SegmentationMask.from_json({
            "box_2d": marker.box_2d,
            "label": marker.label,
            "mask": marker.mask,
            "confidence": confidence,
        })
        return ImageMarker.ai_segmentation(mask, marker_id=marker.id)
    except ValueError as e:
        raise BadRequest(f"Invalid marker {marker.id}: {e}")


def context_markers(request: ContextRequest) -> list[ImageMarker]:
    markers = [marker_from_schema(m) for m in request.markers]
    try:
        annotations = parse_annotations([a.model_dump() for a in request.annotations])
    except ValueError as e:
        raise BadRequest(f"Invalid annotation: {e}")
    markers.extend(annotations_to_markers(annotations))
    return markers


def context_from_request(request: ContextRequest) -> ProcessingContext:
    markers = context_markers(request)
    try:
        return ProcessingContextBuilder.build(
            request.processing_type,
            request.quality_level,
            request.performance_priority,
            markers,
            prompt_instructions=request.prompt_instructions,
            edit_instructions=request.edit_instructions,
            custom_instructions=request.custom_instructions,
            target_format=request.target_format,
        )
    except ValueError as e:
        raise BadRequest(str(e))


def parse_context_json(raw: str | None) -> ContextRequest:
    if raw is None or not raw.strip():
        return ContextRequest()
    try:
        return ContextRequest.model_validate_json(raw)
    except ValueError as e:
        logger.debug(f"Rejected context payload: {e}")
        raise BadRequest(f"Invalid processing context: {e}")


# ----------------------------
# Domain -> responses
# ----------------------------

def box_to_schema(box: BoundingBox2D) -> Box2D:
    return Box2D(y0=box.y0, x0=box.x0, y1=box.y1, x1=box.x1)


def marker_to_schema(marker: ImageMarker) -> MarkerOut:
    return MarkerOut(
        id=marker.id,
        label=marker.label,
        origin=marker.origin,
        x=marker.x,
        y=marker.y,
        box_2d=box_to_schema(marker.bounding_box) if marker.bounding_box else None,
        confidence=marker.confidence,
    )


def context_to_schema(context: ProcessingContext) -> ContextOut:
    return ContextOut(
        processing_type=context.processing_type,
        quality_level=context.quality_level,
        performance_priority=context.performance_priority,
        markers=[marker_to_schema(m) for m in context.markers],
        custom_instructions=context.custom_instructions,
        target_format=context.target_format,
        prompt_instructions=context.prompt_system_instructions,
        edit_instructions=context.edit_system_instructions,
    )


def _mask_coverage(mask: SegmentationMask) -> float | None:
    try:
        return mask.coverage()
    except (OSError, ValueError) as e:
        logger.debug(f"Mask coverage unavailable for {mask.label}: {e}")
        return None


def segmentation_to_schema(result: SegmentationResult) -> SegmentationResponse:
    stats = result.stats()
    return SegmentationResponse(
        masks=[
            MaskOut(
                label=m.label,
                confidence=m.confidence,
                box_2d=box_to_schema(m.bounding_box),
                absolute_box=box_to_schema(
                    m.to_absolute_coordinates(result.image_width, result.image_height)
                ),
                coverage=_mask_coverage(m),
            )
            for m in result.masks
        ],
        stats=SegmentationStatsOut(
            total_masks=stats.total_masks,
            average_confidence=stats.average_confidence,
            unique_labels=list(stats.unique_labels),
            total_area=stats.total_area,
        ),
        markers=[marker_to_schema(m) for m in result.to_markers()],
        image_width=result.image_width,
        image_height=result.image_height,
        processing_time_ms=result.processing_time_ms,
        model_version=result.model_version,
    )


def result_to_schema(result: ProcessingResult) -> ProcessingResultOut:
    return ProcessingResultOut(
        job_id=result.job_id,
        original_prompt=result.original_prompt,
        enhanced_prompt=result.enhanced_prompt,
        processing_time_ms=result.processing_time.total_seconds() * 1000,
        image_base64=base64.b64encode(result.processed_image_data).decode("utf-8"),
        segmentation=segmentation_to_schema(result.segmentation) if result.segmentation else None,
    )


def state_to_schema(
    state: PipelineState,
    *,
    session_id: str | None = None,
    history: tuple[PipelineState, ...] = (),
    busy: bool = False,
) -> PipelineStateResponse:
    response = PipelineStateResponse(
        session_id=session_id,
        status=state.status,
        busy=busy,
        history=[s.status for s in history],
    )
    if isinstance(state, PipelineInProgress):
        response.progress = ProgressOut(
            stage=state.progress.stage,
            progress=state.progress.progress,
            message=state.progress.message,
        )
        response.can_cancel = state.can_cancel
    elif isinstance(state, PipelineSuccess):
        response.result = result_to_schema(state.result)
    elif isinstance(state, PipelineError):
        response.error = state.message
        response.error_type = type(state.error).__name__ if state.error else None
    elif isinstance(state, PipelineCancelled):
        response.cancel_reason = state.reason
    return response
