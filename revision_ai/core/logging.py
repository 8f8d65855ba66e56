from __future__ import annotations

import sys
from loguru import logger

from revision_ai.core.config import Settings


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=settings.log_level.upper(),
        backtrace=False,
        diagnose=False,
        enqueue=True,
    )
    logger.debug(f"Logging configured for {settings.app_name} ({settings.app_env})")
