from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable

from loguru import logger

from revision_ai.core.cancellation import CancellationToken, CancellationTokenSource
from revision_ai.core.errors import OperationCancelledError, UnexpectedError, ValidationError
from revision_ai.core.result import Failure, Result
from revision_ai.models.context import ProcessingContext
from revision_ai.models.domain import (
    PipelineCancelled,
    PipelineError,
    PipelineInitial,
    PipelineInProgress,
    PipelineState,
    PipelineSuccess,
    ProcessingProgress,
    ProcessingResult,
    ProcessingStage,
    SelectedImage,
    is_terminal,
)
from revision_ai.services.context_builder import ProcessingContextBuilder
from revision_ai.services.image_io import ImageSourceService
from revision_ai.services.processing import ProcessImageUseCase

StateListener = Callable[[PipelineState], None]

USER_CANCEL_REASON = "Processing cancelled by user"
TASK_CANCEL_REASON = "Processing task cancelled"


class ProcessingPipeline:
    """
    State machine driving one image request at a time.

        Initial --submit--> InProgress(analyzing 0.1)
                 --image loaded--> InProgress(promptEngineering 0.3)
                 --dispatched--> InProgress(aiProcessing 0.5)
                 --> Success | Error | Cancelled
        terminal --reset--> Initial

    Only one request is in flight per instance: a submit while a request is
    running, or while an abandoned call is still draining (``is_busy``), is
    ignored. Cancellation is cooperative; a backend call already
    dispatched is allowed to finish and its answer is discarded.
    Nothing raised by collaborators escapes ``submit``.
    """

    def __init__(
        self,
        use_case: ProcessImageUseCase,
        image_io: ImageSourceService,
        *,
        default_timeout: float | None = None,
    ) -> None:
        self._use_case = use_case
        self._image_io = image_io
        self._default_timeout = default_timeout
        self._source = CancellationTokenSource()
        self._active_token: CancellationToken | None = None
        self._busy = False
        self._last_progress = 0.0
        self._state: PipelineState = PipelineInitial()
        self._history: list[PipelineState] = [self._state]
        self._listeners: list[StateListener] = []

    # ----------------------------
    # Observation
    # ----------------------------
    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> tuple[PipelineState, ...]:
        return tuple(self._history)

    @property
    def is_processing(self) -> bool:
        return isinstance(self._state, PipelineInProgress)

    @property
    def is_busy(self) -> bool:
        """A backend call is outstanding, possibly for a cancelled or reset request."""
        return self._busy

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def stream(self) -> AsyncIterator[PipelineState]:
        """Current state, then every later state; the caller decides when to stop."""
        queue: asyncio.Queue[PipelineState] = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            yield self._state
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    def _emit(self, state: PipelineState) -> None:
        self._state = state
        self._history.append(state)
        logger.debug(f"Pipeline state -> {state.status.value}")
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Pipeline state listener failed: {e}")

    def _progress(self, stage: ProcessingStage, value: float, message: str) -> None:
        # Progress never goes backwards within a request
        value = max(value, self._last_progress)
        self._last_progress = value
        self._emit(PipelineInProgress(
            progress=ProcessingProgress(stage=stage, progress=value, message=message),
            can_cancel=True,
        ))

    # ----------------------------
    # Commands
    # ----------------------------
    async def submit(
        self,
        image: SelectedImage,
        prompt: str,
        context: ProcessingContext,
        *,
        timeout: float | None = None,
    ) -> PipelineState:
        if self.is_processing:
            logger.warning("Pipeline already processing, ignoring submit")
            return self._state
        if self._busy:
            logger.warning("Previous request is still draining, ignoring submit")
            return self._state

        logger.info(f"Submit: image={image.name}, prompt={prompt!r}, markers={len(context.markers)}")

        if not image.has_source:
            return self._fail_fast(image, ValidationError("Image has neither path nor bytes - cannot process"))
        if image.data is not None and len(image.data) == 0:
            return self._fail_fast(image, ValidationError("Image data is empty - cannot process"))

        self._busy = True
        self._source.reset()
        timeout = timeout if timeout is not None else self._default_timeout
        timeout_token = CancellationToken.timeout(timeout) if timeout else None
        parents = [self._source.token] + ([timeout_token] if timeout_token else [])
        token = CancellationToken.any(parents)
        self._active_token = token
        self._last_progress = 0.0

        self._progress(ProcessingStage.ANALYZING, 0.1, "Loading image data...")
        token.register(self._on_token_cancelled)

        try:
            outcome = await self._run(image, prompt, context, token)
        except OperationCancelledError as e:
            outcome = Failure(e)
        except asyncio.CancelledError:
            # The task running submit was cancelled; leave a terminal state behind
            if token is self._active_token and self.is_processing:
                self._source.cancel(TASK_CANCEL_REASON)
            raise
        except Exception as e:
            logger.error(f"Unexpected error during processing: {e}")
            outcome = Failure(UnexpectedError.wrap(e, "Unexpected error during processing"))
        finally:
            self._busy = False
            if timeout_token is not None:
                timeout_token.dispose()

        self._resolve(outcome, image, token)
        return self._state

    async def _run(
        self,
        image: SelectedImage,
        prompt: str,
        context: ProcessingContext,
        token: CancellationToken,
    ) -> Result[ProcessingResult]:
        loaded = await self._image_io.load_bytes(image)
        token.throw_if_cancelled()
        if loaded.is_failure:
            return Failure(loaded.error_or_none)
        image_bytes = loaded.value_or(b"")

        self._progress(ProcessingStage.PROMPT_ENGINEERING, 0.3, "Preparing AI prompt...")
        try:
            context = ProcessingContextBuilder.validate(context)
        except ValueError as e:
            return Failure(ValidationError(str(e)))
        token.throw_if_cancelled()

        self._progress(ProcessingStage.AI_PROCESSING, 0.5, "Processing with AI...")
        result = await self._use_case(image_bytes, prompt, context, token=token)
        token.throw_if_cancelled()
        return result

    def _resolve(
        self,
        outcome: Result[ProcessingResult],
        image: SelectedImage,
        token: CancellationToken,
    ) -> None:
        if token is not self._active_token or not self.is_processing:
            logger.info("Discarding result of a request that is no longer active")
            return

        error = outcome.error_or_none
        if token.is_cancelled or isinstance(error, OperationCancelledError):
            self._emit(PipelineCancelled(reason=token.reason or str(error)))
            return

        outcome.fold(
            success=lambda result: self._on_success(result, image),
            failure=lambda err: self._on_failure(err, image),
        )

    def _on_success(self, result: ProcessingResult, image: SelectedImage) -> None:
        logger.info(
            f"AI processing succeeded: job={result.job_id}, "
            f"{len(result.processed_image_data)} bytes in {result.processing_time.total_seconds():.2f}s"
        )
        self._emit(PipelineSuccess(result=result, original_image=image))

    def _on_failure(self, error, image: SelectedImage) -> None:
        logger.error(f"AI processing failed ({type(error).__name__}): {error}")
        self._emit(PipelineError(message=str(error), original_image=image, error=error))

    def _fail_fast(self, image: SelectedImage, error: ValidationError) -> PipelineState:
        logger.warning(f"Rejected before processing: {error}")
        self._emit(PipelineError(message=str(error), original_image=image, error=error))
        return self._state

    def _on_token_cancelled(self, token: CancellationToken) -> None:
        if token is self._active_token and self.is_processing:
            logger.info(f"Processing cancelled: {token.reason}")
            self._emit(PipelineCancelled(reason=token.reason))

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel the running request. No-op (returns False) in any other state."""
        if not self.is_processing or not self._state.can_cancel:
            return False
        self._source.cancel(reason or USER_CANCEL_REASON)
        return True

    def reset(self) -> None:
        """Return to ``Initial``; a running request is cancelled first."""
        if self.is_processing:
            self.cancel("Pipeline reset")
        if isinstance(self._state, PipelineInitial):
            return
        self._source.reset()
        self._active_token = None
        self._last_progress = 0.0
        self._emit(PipelineInitial())

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self._state)
