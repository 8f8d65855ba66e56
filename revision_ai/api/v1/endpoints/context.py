from __future__ import annotations

from fastapi import APIRouter, Depends
from loguru import logger

from revision_ai.api.v1.serializers import (
    context_from_request,
    context_markers,
    context_to_schema,
    marker_to_schema,
)
from revision_ai.dependencies.container import Container, get_container
from revision_ai.models.schemas import (
    ContextRequest,
    ContextValidationResponse,
    HitTestRequest,
    HitTestResponse,
)
from revision_ai.services.context_builder import ProcessingContextBuilder

router = APIRouter()


@router.post("/context/validate", response_model=ContextValidationResponse)
async def validate_context(request: ContextRequest) -> ContextValidationResponse:
    """
    Check a combination of processing options before submitting.

    Returns whether the combination is valid as chosen, the recommended
    processing type for the supplied markers, and the context the builder
    would actually use.
    """
    markers = context_markers(request)
    is_valid = ProcessingContextBuilder.is_valid_combination(
        request.processing_type,
        request.quality_level,
        request.performance_priority,
        markers,
    )
    context = context_from_request(request)

    logger.debug(
        f"Context validation: requested={request.processing_type.value}/{request.quality_level.value}, "
        f"valid={is_valid}, built={context.processing_type.value}/{context.quality_level.value}"
    )

    return ContextValidationResponse(
        is_valid=is_valid,
        recommended_type=ProcessingContextBuilder.get_recommended_type(markers),
        context=context_to_schema(context),
    )


@router.post("/context/hit-test", response_model=HitTestResponse)
async def hit_test(
    request: HitTestRequest,
    container: Container = Depends(get_container),
) -> HitTestResponse:
    """Markers containing the pixel (x, y), in submission order."""
    radius = container.settings.marker_hit_radius_px
    markers = context_markers(ContextRequest(markers=request.markers, annotations=request.annotations))
    hits = [
        m for m in markers
        if m.contains_point(request.x, request.y, request.image_width, request.image_height, hit_radius=radius)
    ]
    return HitTestResponse(hits=[marker_to_schema(m) for m in hits], hit_radius_px=radius)
