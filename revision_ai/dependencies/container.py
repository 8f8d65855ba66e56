from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from fastapi import Request

from revision_ai.core.config import Settings
from revision_ai.core.errors import DependencyError

from revision_ai.services.image_io import ImageSourceService
from revision_ai.services.backend import AIBackend, HttpAIBackend, MockAIBackend
from revision_ai.services.processing import ProcessImageUseCase
from revision_ai.services.pipeline import ProcessingPipeline
from revision_ai.services.sessions import PipelineRegistry
from revision_ai.services.rate_limit import RateLimiter
from revision_ai.services.verification import AuthRepository, SendEmailVerificationUseCase


# ============================
# Dependency Injection Container
# ============================

@dataclass(frozen=True)
class Container:
    settings: Settings

    # Collaborators
    image_io: ImageSourceService
    backend: AIBackend

    # Use cases
    process_image: ProcessImageUseCase

    # Orchestration (one pipeline per client session)
    pipelines: PipelineRegistry

    # ----------------------------
    # Factory
    # ----------------------------
    @classmethod
    def from_settings(cls, settings: Settings) -> "Container":
        from loguru import logger

        # ---- Image source ----
        image_io = ImageSourceService(max_file_size_mb=settings.max_image_size_mb)

        # ---- AI backend ----
        mode = settings.backend_mode.lower().strip()
        if mode == "mock":
            backend: AIBackend = MockAIBackend(max_image_bytes=settings.max_image_size_bytes)
            logger.warning("Using in-process mock AI backend")
        elif mode == "http":
            if not settings.backend_api_key:
                raise DependencyError("BACKEND_API_KEY is required when BACKEND_MODE=http")
            backend = HttpAIBackend(
                api_url=settings.backend_api_url,
                api_key=settings.backend_api_key,
                analyze_model=settings.analyze_model,
                generate_model=settings.generate_model,
                segmentation_model=settings.segmentation_model,
                max_image_bytes=settings.max_image_size_bytes,
                analyze_timeout=settings.analyze_timeout_seconds,
                generate_timeout=settings.generate_timeout_seconds,
            )
            logger.info(f"Using HTTP AI backend at {settings.backend_api_url}")
        else:
            raise DependencyError(f"Unknown BACKEND_MODE '{settings.backend_mode}' (expected 'http' or 'mock')")

        # ---- Use case ----
        process_image = ProcessImageUseCase(
            backend=backend,
            image_io=image_io,
            max_marked_areas=settings.max_marked_areas,
        )

        # ---- Pipeline sessions ----
        def new_pipeline() -> ProcessingPipeline:
            return ProcessingPipeline(
                process_image,
                image_io,
                default_timeout=settings.pipeline_timeout_seconds,
            )

        pipelines = PipelineRegistry(
            factory=new_pipeline,
            max_sessions=settings.max_pipeline_sessions,
        )

        return cls(
            settings=settings,
            image_io=image_io,
            backend=backend,
            process_image=process_image,
            pipelines=pipelines,
        )

    def new_pipeline(self) -> ProcessingPipeline:
        """Standalone pipeline, not tracked by the session registry."""
        return self.pipelines.factory()

    def new_verification_use_case(self, repository: AuthRepository) -> SendEmailVerificationUseCase:
        """Each use case owns its cooldown; callers keep one per user session."""
        limiter = RateLimiter(cooldown=timedelta(seconds=self.settings.verification_cooldown_seconds))
        return SendEmailVerificationUseCase(repository, limiter)

    # ----------------------------
    # Lifecycle Hooks
    # ----------------------------
    async def start(self) -> None:
        """
        Called on FastAPI startup.
        """
        await self.backend.open()

    async def stop(self) -> None:
        """
        Called on FastAPI shutdown.
        """
        self.pipelines.close_all()
        await self.backend.close()


# ============================
# FastAPI Dependency
# ============================

def get_container(request: Request) -> Container:
    return request.app.state.container
