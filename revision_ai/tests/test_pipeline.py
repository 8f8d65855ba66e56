import asyncio
from dataclasses import dataclass, field

import pytest

from revision_ai.core.errors import QuotaExceededError
from revision_ai.core.result import Failure, Success
from revision_ai.models.context import PerformancePriority, ProcessingContext, ProcessingType, QualityLevel
from revision_ai.models.domain import (
    PipelineCancelled,
    PipelineError,
    PipelineInitial,
    PipelineInProgress,
    PipelineStatus,
    PipelineSuccess,
    ProcessingStage,
    SelectedImage,
    is_terminal,
)
from revision_ai.models.markers import ImageMarker
from revision_ai.services.backend import MockAIBackend
from revision_ai.services.context_builder import ProcessingContextBuilder
from revision_ai.services.image_io import ImageSourceService
from revision_ai.services.pipeline import TASK_CANCEL_REASON, USER_CANCEL_REASON, ProcessingPipeline
from revision_ai.services.processing import ProcessImageUseCase

IMAGE = SelectedImage(name="tiny.png", data=bytes([1, 2, 3, 4]))


@dataclass
class GatedBackend(MockAIBackend):
    """Holds ``analyze`` open until the test releases the gate."""
    gate: asyncio.Event = field(default_factory=asyncio.Event)
    started: asyncio.Event = field(default_factory=asyncio.Event)

    async def analyze(self, image_bytes, marked_areas, *, system_instructions=None, token=None):
        async def call():
            self.calls.append("analyze")
            self.started.set()
            await self.gate.wait()
            return Success("Brighten the image.")

        return await self._dispatch("analyze", call, token=token, timeout=None)


@dataclass
class QuotaBackend(MockAIBackend):
    async def analyze(self, image_bytes, marked_areas, *, system_instructions=None, token=None):
        self.calls.append("analyze")
        return Failure(QuotaExceededError("quota exceeded"))


def make_pipeline(backend, timeout=None):
    image_io = ImageSourceService()
    use_case = ProcessImageUseCase(backend=backend, image_io=image_io)
    return ProcessingPipeline(use_case, image_io, default_timeout=timeout)


def test_end_to_end_success():
    backend = MockAIBackend()
    pipeline = make_pipeline(backend)
    seen = []
    pipeline.subscribe(seen.append)

    state = asyncio.run(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))

    assert isinstance(state, PipelineSuccess)
    assert state.result.original_prompt == "test"
    assert state.result.processed_image_data == bytes([1, 2, 3, 4])
    assert "User request: test" in state.result.enhanced_prompt
    assert state.original_image is IMAGE
    assert backend.calls == ["analyze", "generate"]

    assert [s.status for s in pipeline.history] == [
        PipelineStatus.INITIAL,
        PipelineStatus.IN_PROGRESS,
        PipelineStatus.IN_PROGRESS,
        PipelineStatus.IN_PROGRESS,
        PipelineStatus.SUCCESS,
    ]
    progress = [s.progress for s in seen if isinstance(s, PipelineInProgress)]
    assert [p.progress for p in progress] == [0.1, 0.3, 0.5]
    assert [p.stage for p in progress] == [
        ProcessingStage.ANALYZING,
        ProcessingStage.PROMPT_ENGINEERING,
        ProcessingStage.AI_PROCESSING,
    ]
    assert pipeline.is_terminal


def test_empty_bytes_fail_without_backend_calls():
    backend = MockAIBackend()
    pipeline = make_pipeline(backend)

    state = asyncio.run(pipeline.submit(SelectedImage(data=b""), "test", ProcessingContext.quick_enhance()))

    assert isinstance(state, PipelineError)
    assert "empty" in state.message
    assert backend.calls == []
    assert [s.status for s in pipeline.history] == [PipelineStatus.INITIAL, PipelineStatus.ERROR]


def test_missing_source_fails_fast():
    pipeline = make_pipeline(MockAIBackend())
    state = asyncio.run(pipeline.submit(SelectedImage(), "test", ProcessingContext.quick_enhance()))
    assert isinstance(state, PipelineError)
    assert "neither path nor bytes" in state.message


def test_image_loaded_from_path(tmp_path):
    path = tmp_path / "photo.bin"
    path.write_bytes(b"abcdef")
    backend = MockAIBackend()
    pipeline = make_pipeline(backend)

    state = asyncio.run(pipeline.submit(SelectedImage(path=path), "", ProcessingContext.quick_enhance()))

    assert isinstance(state, PipelineSuccess)
    assert state.result.processed_image_data == b"abcdef"


def test_backend_failure_becomes_error_state():
    pipeline = make_pipeline(QuotaBackend())
    state = asyncio.run(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))
    assert isinstance(state, PipelineError)
    assert state.message == "quota exceeded"
    assert isinstance(state.error, QuotaExceededError)


def test_segmentation_request_skips_analysis(image_factory):
    backend = MockAIBackend()
    pipeline = make_pipeline(backend)
    png = image_factory(100, 50)
    context = ProcessingContextBuilder.build(
        ProcessingType.SEGMENTATION, QualityLevel.STANDARD, PerformancePriority.BALANCED
    )

    state = asyncio.run(pipeline.submit(SelectedImage(data=png), "cups", context))

    assert isinstance(state, PipelineSuccess)
    assert backend.calls == ["segment"]
    assert state.result.processed_image_data == png
    segmentation = state.result.segmentation
    assert (segmentation.image_width, segmentation.image_height) == (100, 50)
    assert segmentation.stats().total_masks == 1


def test_only_one_request_in_flight():
    async def scenario():
        backend = GatedBackend()
        pipeline = make_pipeline(backend)
        first = asyncio.create_task(pipeline.submit(IMAGE, "first", ProcessingContext.quick_enhance()))
        await backend.started.wait()

        ignored = await pipeline.submit(IMAGE, "second", ProcessingContext.quick_enhance())
        assert isinstance(ignored, PipelineInProgress)
        assert backend.calls == ["analyze"]

        backend.gate.set()
        return backend, await first

    backend, state = asyncio.run(scenario())
    assert isinstance(state, PipelineSuccess)
    assert state.result.original_prompt == "first"
    assert backend.calls == ["analyze", "generate"]


def test_cancel_discards_late_result():
    async def scenario():
        backend = GatedBackend()
        pipeline = make_pipeline(backend)
        first = asyncio.create_task(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))
        await backend.started.wait()

        assert pipeline.cancel()
        assert isinstance(pipeline.state, PipelineCancelled)
        assert not pipeline.cancel()

        backend.gate.set()
        final = await first

        # A fresh submit works once the abandoned call has drained
        retried = await pipeline.submit(IMAGE, "again", ProcessingContext.quick_enhance())
        return backend, final, retried

    backend, final, retried = asyncio.run(scenario())
    assert isinstance(final, PipelineCancelled)
    assert final.reason == USER_CANCEL_REASON
    assert isinstance(retried, PipelineSuccess)
    assert backend.calls == ["analyze", "analyze", "generate"]


def test_timeout_cancels_with_timeout_reason():
    pipeline = make_pipeline(MockAIBackend(latency_seconds=0.2), timeout=0.05)
    state = asyncio.run(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))
    assert isinstance(state, PipelineCancelled)
    assert state.reason == "Operation timed out"


def test_reset_returns_to_initial():
    pipeline = make_pipeline(MockAIBackend())
    asyncio.run(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))
    pipeline.reset()
    assert isinstance(pipeline.state, PipelineInitial)
    assert not pipeline.is_terminal

    history_len = len(pipeline.history)
    pipeline.reset()
    assert len(pipeline.history) == history_len


def test_reset_while_processing_cancels_first():
    async def scenario():
        backend = GatedBackend()
        pipeline = make_pipeline(backend)
        task = asyncio.create_task(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))
        await backend.started.wait()

        pipeline.reset()
        backend.gate.set()
        await task
        return pipeline

    pipeline = asyncio.run(scenario())
    statuses = [s.status for s in pipeline.history]
    assert statuses[-2:] == [PipelineStatus.CANCELLED, PipelineStatus.INITIAL]
    assert isinstance(pipeline.state, PipelineInitial)


def test_stream_yields_current_then_updates():
    async def scenario():
        pipeline = make_pipeline(MockAIBackend())
        seen = []

        async def consume():
            async for state in pipeline.stream():
                seen.append(state.status)
                if is_terminal(state):
                    break

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        await pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance())
        await asyncio.wait_for(consumer, timeout=1)
        return seen

    seen = asyncio.run(scenario())
    assert seen[0] is PipelineStatus.INITIAL
    assert seen[-1] is PipelineStatus.SUCCESS


def test_listener_errors_do_not_break_pipeline():
    pipeline = make_pipeline(MockAIBackend())

    def broken(state):
        raise RuntimeError("listener bug")

    pipeline.subscribe(broken)
    state = asyncio.run(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()))
    assert isinstance(state, PipelineSuccess)


def test_cancelled_submit_task_leaves_cancelled_state():
    async def scenario():
        backend = MockAIBackend(latency_seconds=0.5)
        pipeline = make_pipeline(backend)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(pipeline.submit(IMAGE, "test", ProcessingContext.quick_enhance()), timeout=0.05)
        after = pipeline.state
        busy = pipeline.is_busy

        backend.latency_seconds = 0.0
        retried = await pipeline.submit(IMAGE, "again", ProcessingContext.quick_enhance())
        return after, busy, retried

    after, busy, retried = asyncio.run(scenario())
    assert isinstance(after, PipelineCancelled)
    assert after.reason == TASK_CANCEL_REASON
    assert not busy
    assert isinstance(retried, PipelineSuccess)


def test_too_many_marked_areas_fail_before_backend():
    backend = MockAIBackend()
    pipeline = make_pipeline(backend)
    markers = [ImageMarker.user_point(f"p{i}", 0.5, 0.5) for i in range(11)]
    context = ProcessingContextBuilder.build(
        ProcessingType.OBJECT_REMOVAL, QualityLevel.STANDARD, PerformancePriority.BALANCED, markers
    )

    state = asyncio.run(pipeline.submit(IMAGE, "remove", context))

    assert isinstance(state, PipelineError)
    assert state.message == "Too many marked areas: 11 (max 10)"
    assert backend.calls == []

    allowed = context.copy_with(markers=tuple(markers[:10]))
    assert isinstance(asyncio.run(pipeline.submit(IMAGE, "remove", allowed)), PipelineSuccess)


def test_submit_while_reset_request_drains_is_ignored():
    async def scenario():
        backend = GatedBackend()
        pipeline = make_pipeline(backend)
        task = asyncio.create_task(pipeline.submit(IMAGE, "first", ProcessingContext.quick_enhance()))
        await backend.started.wait()

        pipeline.reset()
        busy_after_reset = pipeline.is_busy
        ignored = await pipeline.submit(IMAGE, "second", ProcessingContext.quick_enhance())

        backend.gate.set()
        await task
        return pipeline, backend, busy_after_reset, ignored

    pipeline, backend, busy_after_reset, ignored = asyncio.run(scenario())
    assert busy_after_reset
    assert isinstance(ignored, PipelineInitial)
    assert backend.calls == ["analyze"]
    assert not pipeline.is_busy
