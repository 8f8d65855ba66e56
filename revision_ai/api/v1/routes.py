from fastapi import APIRouter

from revision_ai.api.v1.endpoints.health import router as health_router
from revision_ai.api.v1.endpoints.context import router as context_router
from revision_ai.api.v1.endpoints.processing import router as processing_router
from revision_ai.api.v1.endpoints.segmentation import router as segmentation_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(context_router, tags=["context"])
router.include_router(processing_router, tags=["processing"])
router.include_router(segmentation_router, tags=["segmentation"])
