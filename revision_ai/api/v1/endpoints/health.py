from __future__ import annotations

from fastapi import APIRouter, Depends

from revision_ai.dependencies.container import Container, get_container

router = APIRouter()


@router.get("/health")
async def health(container: Container = Depends(get_container)) -> dict:
    return {
        "status": "ok",
        "backend": container.settings.backend_mode,
        "open_sessions": len(container.pipelines),
    }
