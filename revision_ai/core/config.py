from __future__ import annotations
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Load .env file from the project root (parent of revision_ai/core)
    _env_file_path = Path(__file__).parent.parent.parent / ".env"

    model_config = SettingsConfigDict(
        env_file=str(_env_file_path) if _env_file_path.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    app_name: str = Field(default="Revision AI Pipeline", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Backend mode: "http" (remote generative backend) or "mock" (in-process)
    backend_mode: str = Field(default="http", alias="BACKEND_MODE")
    backend_api_url: str = Field(
        default="http://localhost:8080/v1",
        alias="BACKEND_API_URL"
    )
    backend_api_key: str = Field(default="", alias="BACKEND_API_KEY")

    analyze_model: str = Field(default="gemini-2.5-flash", alias="ANALYZE_MODEL")
    generate_model: str = Field(
        default="gemini-2.0-flash-preview-image-generation",
        alias="GENERATE_MODEL"
    )
    segmentation_model: str = Field(default="gemini-2.5-flash", alias="SEGMENTATION_MODEL")

    # Request limits
    max_image_size_mb: int = Field(default=10, alias="MAX_IMAGE_SIZE_MB")
    max_marked_areas: int = Field(default=10, alias="MAX_MARKED_AREAS")
    analyze_timeout_seconds: float = Field(default=30.0, alias="ANALYZE_TIMEOUT_SECONDS")
    generate_timeout_seconds: float = Field(default=60.0, alias="GENERATE_TIMEOUT_SECONDS")
    pipeline_timeout_seconds: float = Field(default=120.0, alias="PIPELINE_TIMEOUT_SECONDS")

    # Marker hit-testing tolerance for user-drawn points (pixels)
    marker_hit_radius_px: float = Field(default=20.0, alias="MARKER_HIT_RADIUS_PX")

    # Email verification resend cooldown
    verification_cooldown_seconds: int = Field(default=60, alias="VERIFICATION_COOLDOWN_SECONDS")

    # Upper bound on concurrently open pipeline sessions
    max_pipeline_sessions: int = Field(default=256, alias="MAX_PIPELINE_SESSIONS")

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024
