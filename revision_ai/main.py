from fastapi import FastAPI, Request, status
from fastapi.responses import ORJSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from revision_ai.api.v1.routes import router as v1_router
from revision_ai.core.config import Settings
from revision_ai.core.errors import BadRequest, DependencyError, ProcessingError
from revision_ai.core.lifespan import build_lifespan
from revision_ai.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = Settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        default_response_class=ORJSONResponse,
        lifespan=build_lifespan(settings),
    )

    # Add CORS middleware to allow frontend requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProcessingError)
    async def processing_error_handler(request: Request, exc: ProcessingError):
        # Input problems are the caller's fault; everything else is upstream
        if isinstance(exc, BadRequest):
            code = status.HTTP_400_BAD_REQUEST
        else:
            code = status.HTTP_502_BAD_GATEWAY
            logger.warning(f"Processing failed on {request.url.path}: {type(exc).__name__}: {exc}")
        return ORJSONResponse(
            status_code=code,
            content={
                "detail": str(exc),
                "error_type": type(exc).__name__,
                "retryable": exc.retryable,
            },
        )

    @app.exception_handler(BadRequest)
    async def bad_request_handler(request: Request, exc: BadRequest):
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        # Convert ValueError to BadRequest format for consistency
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(DependencyError)
    async def dependency_error_handler(request: Request, exc: DependencyError):
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return ORJSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", []))
            error_msg = first_error.get("msg", "Validation error")
            detail = f"Validation error for field '{field}': {error_msg}"
            if len(errors) > 1:
                detail += f" (and {len(errors) - 1} more error(s))"
        else:
            detail = "Validation error"

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": detail},
        )

    app.include_router(v1_router, prefix="/api/v1")
    return app


app = create_app()
