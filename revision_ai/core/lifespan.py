from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI
from loguru import logger

from revision_ai.core.config import Settings
from revision_ai.dependencies.container import Container


def build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = Container.from_settings(settings)
        await container.start()
        app.state.container = container
        logger.info(f"{settings.app_name} started (backend={settings.backend_mode})")

        yield

        await container.stop()
        logger.info(f"{settings.app_name} stopped")

    return lifespan
