from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from loguru import logger
from starlette import status

from revision_ai.api.v1.serializers import context_from_request, parse_context_json, state_to_schema
from revision_ai.core.errors import BadRequest
from revision_ai.dependencies.container import Container, get_container
from revision_ai.models.domain import SelectedImage
from revision_ai.models.schemas import PipelineStateResponse, SessionCreatedResponse
from revision_ai.services.pipeline import ProcessingPipeline

router = APIRouter()


async def _selected_image(image: UploadFile) -> SelectedImage:
    if not image.filename:
        raise BadRequest("Image file is required")
    data = await image.read()
    logger.debug(f"Received upload {image.filename} ({len(data)} bytes)")
    return SelectedImage(name=image.filename, data=data, declared_size=image.size)


def _snapshot(state, session_id: str, pipeline: ProcessingPipeline) -> PipelineStateResponse:
    return state_to_schema(state, session_id=session_id, history=pipeline.history, busy=pipeline.is_busy)


def _get_pipeline(container: Container, session_id: str) -> ProcessingPipeline:
    pipeline = container.pipelines.get(session_id)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Pipeline session '{session_id}' not found"
        )
    return pipeline


@router.post("/process", response_model=PipelineStateResponse)
async def process_image(
    image: UploadFile = File(...),
    prompt: str = Form(default=""),
    context: str | None = Form(default=None),
    container: Container = Depends(get_container),
) -> PipelineStateResponse:
    """
    One-shot processing: run a fresh pipeline to completion and return its
    final state. ``context`` is a JSON-encoded processing context.
    """
    selected = await _selected_image(image)
    processing_context = context_from_request(parse_context_json(context))

    pipeline = container.new_pipeline()
    state = await pipeline.submit(selected, prompt, processing_context)
    return state_to_schema(state, history=pipeline.history, busy=pipeline.is_busy)


@router.post("/pipelines", response_model=SessionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_pipeline(container: Container = Depends(get_container)) -> SessionCreatedResponse:
    session_id, pipeline = container.pipelines.create()
    logger.info(f"Pipeline session {session_id} opened")
    return SessionCreatedResponse(
        session_id=session_id,
        state=_snapshot(pipeline.state, session_id, pipeline),
    )


@router.get("/pipelines/{session_id}", response_model=PipelineStateResponse)
async def get_pipeline(
    session_id: str,
    container: Container = Depends(get_container),
) -> PipelineStateResponse:
    pipeline = _get_pipeline(container, session_id)
    return _snapshot(pipeline.state, session_id, pipeline)


@router.post("/pipelines/{session_id}/submit", response_model=PipelineStateResponse)
async def submit_pipeline(
    session_id: str,
    image: UploadFile = File(...),
    prompt: str = Form(default=""),
    context: str | None = Form(default=None),
    timeout_seconds: float | None = Form(default=None),
    container: Container = Depends(get_container),
) -> PipelineStateResponse:
    """
    Submit to an existing session and wait for the outcome. While this call
    is running, the session can be cancelled from another request.
    """
    pipeline = _get_pipeline(container, session_id)
    if pipeline.is_busy:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Pipeline session '{session_id}' is still busy with a previous request"
        )
    if timeout_seconds is not None and timeout_seconds <= 0:
        raise BadRequest(f"timeout_seconds must be greater than 0, got {timeout_seconds}")

    selected = await _selected_image(image)
    processing_context = context_from_request(parse_context_json(context))

    state = await pipeline.submit(selected, prompt, processing_context, timeout=timeout_seconds)
    return _snapshot(state, session_id, pipeline)


@router.post("/pipelines/{session_id}/cancel", response_model=PipelineStateResponse)
async def cancel_pipeline(
    session_id: str,
    reason: str | None = Form(default=None),
    container: Container = Depends(get_container),
) -> PipelineStateResponse:
    pipeline = _get_pipeline(container, session_id)
    if not pipeline.cancel(reason):
        logger.debug(f"Cancel ignored for session {session_id} in state {pipeline.state.status.value}")
    return _snapshot(pipeline.state, session_id, pipeline)


@router.post("/pipelines/{session_id}/reset", response_model=PipelineStateResponse)
async def reset_pipeline(
    session_id: str,
    container: Container = Depends(get_container),
) -> PipelineStateResponse:
    pipeline = _get_pipeline(container, session_id)
    pipeline.reset()
    return _snapshot(pipeline.state, session_id, pipeline)


@router.delete("/pipelines/{session_id}")
async def delete_pipeline(
    session_id: str,
    container: Container = Depends(get_container),
) -> dict:
    if not container.pipelines.remove(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Pipeline session '{session_id}' not found"
        )
    return {"deleted": True, "session_id": session_id}
