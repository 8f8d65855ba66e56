from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from loguru import logger

from revision_ai.api.v1.serializers import segmentation_to_schema
from revision_ai.core.errors import BadRequest
from revision_ai.dependencies.container import Container, get_container
from revision_ai.models.context import PerformancePriority, ProcessingType, QualityLevel
from revision_ai.models.schemas import SegmentationResponse
from revision_ai.services.context_builder import ProcessingContextBuilder
from revision_ai.utils.timing import timed

router = APIRouter()


@router.post("/segment", response_model=SegmentationResponse)
async def segment_image(
    image: UploadFile = File(...),
    prompt: str = Form(default=""),
    container: Container = Depends(get_container),
) -> SegmentationResponse:
    """
    Segment the objects described by ``prompt``.
    Returns masks (normalized and pixel boxes), summary stats, and ready-made
    aiSegmentation markers for a follow-up processing request.
    """
    if not image.filename:
        raise BadRequest("Image file is required")

    with timed("Image load"):
        data = await image.read()
    logger.info(f"Segmentation request for image: {image.filename} ({len(data)} bytes)")

    context = ProcessingContextBuilder.build(
        ProcessingType.SEGMENTATION,
        QualityLevel.STANDARD,
        PerformancePriority.BALANCED,
    )
    result = await container.process_image(data, prompt, context)
    if result.is_failure:
        raise result.error_or_none

    segmentation = result.value_or_none.segmentation
    logger.info(f"Segmented {len(segmentation.masks)} objects")
    return segmentation_to_schema(segmentation)
