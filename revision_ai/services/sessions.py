from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable
from uuid import uuid4

from loguru import logger

from revision_ai.core.errors import BadRequest
from revision_ai.services.pipeline import ProcessingPipeline


@dataclass
class PipelineRegistry:
    """
    Independent pipeline instances keyed by session id (one per client
    screen). Instances share nothing.
    """
    factory: Callable[[], ProcessingPipeline]
    max_sessions: int = 256
    _pipelines: dict[str, ProcessingPipeline] = field(default_factory=dict, init=False)

    def create(self) -> tuple[str, ProcessingPipeline]:
        if len(self._pipelines) >= self.max_sessions:
            self._evict_idle()
        if len(self._pipelines) >= self.max_sessions:
            raise BadRequest(f"Too many open pipeline sessions (max {self.max_sessions})")
        session_id = uuid4().hex
        pipeline = self.factory()
        self._pipelines[session_id] = pipeline
        logger.debug(f"Created pipeline session {session_id} ({len(self._pipelines)} open)")
        return session_id, pipeline

    def get(self, session_id: str) -> ProcessingPipeline | None:
        return self._pipelines.get(session_id)

    def remove(self, session_id: str) -> bool:
        pipeline = self._pipelines.pop(session_id, None)
        if pipeline is None:
            return False
        pipeline.cancel("Session closed")
        return True

    def _evict_idle(self) -> None:
        idle = [sid for sid, p in self._pipelines.items() if not p.is_processing]
        for sid in idle:
            del self._pipelines[sid]
        if idle:
            logger.info(f"Evicted {len(idle)} idle pipeline sessions")

    def __len__(self) -> int:
        return len(self._pipelines)

    def close_all(self) -> None:
        for pipeline in self._pipelines.values():
            pipeline.cancel("Server shutting down")
        self._pipelines.clear()
