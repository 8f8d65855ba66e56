from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from uuid import uuid4

from loguru import logger

from revision_ai.core.cancellation import CancellationToken
from revision_ai.core.errors import ValidationError
from revision_ai.core.result import Failure, Result
from revision_ai.models.context import ProcessingContext
from revision_ai.models.domain import ProcessingResult
from revision_ai.services.backend import AIBackend
from revision_ai.services.image_io import ImageSourceService
from revision_ai.services.prompting import build_instruction_prompt, build_segmentation_prompt
from revision_ai.utils.timing import timed

DEFAULT_MAX_MARKED_AREAS = 10


@dataclass
class ProcessImageUseCase:
    """
    One request against the AI backend.

    Edit types: analyze -> build instruction prompt -> generate.
    Mask types (segmentation, objectDetection): segment only; the processed
    image is the original and the masks ride along in ``segmentation``.

    Input is validated before any network call. The use case never retries.
    """
    backend: AIBackend
    image_io: ImageSourceService
    max_marked_areas: int = DEFAULT_MAX_MARKED_AREAS

    async def __call__(
        self,
        image_bytes: bytes,
        user_prompt: str,
        context: ProcessingContext,
        *,
        token: CancellationToken | None = None,
    ) -> Result[ProcessingResult]:
        if not image_bytes:
            return Failure(ValidationError("Image data cannot be empty"))
        checked = self.image_io.check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)
        if len(context.markers) > self.max_marked_areas:
            return Failure(ValidationError(
                f"Too many marked areas: {len(context.markers)} (max {self.max_marked_areas})"
            ))

        logger.info(
            f"Processing request: type={context.processing_type.value}, "
            f"quality={context.quality_level.value}, markers={len(context.markers)}"
        )

        with timed(f"AI processing ({context.processing_type.value})") as watch:
            if context.processing_type.produces_masks:
                result = await self._segment(image_bytes, user_prompt, context, token)
            else:
                result = await self._edit(image_bytes, user_prompt, context, token)

        return result.map(lambda r: replace(r, processing_time=watch.elapsed))

    async def _edit(
        self,
        image_bytes: bytes,
        user_prompt: str,
        context: ProcessingContext,
        token: CancellationToken | None,
    ) -> Result[ProcessingResult]:
        analysis = await self.backend.analyze(
            image_bytes,
            context.marked_areas(),
            system_instructions=context.prompt_system_instructions,
            token=token,
        )
        if analysis.is_failure:
            logger.warning(f"Analysis failed: {analysis.error_or_none}")
            return Failure(analysis.error_or_none)

        analysis_prompt = analysis.value_or("")
        instruction_prompt = build_instruction_prompt(user_prompt, analysis_prompt, context)
        logger.debug(f"Instruction prompt ({len(instruction_prompt)} chars) prepared")

        generated = await self.backend.generate(image_bytes, instruction_prompt, token=token)
        return generated.map(
            lambda data: ProcessingResult(
                processed_image_data=data,
                original_prompt=user_prompt,
                enhanced_prompt=instruction_prompt,
                processing_time=timedelta(0),
                job_id=str(uuid4()),
                metadata={
                    "analysis_prompt": analysis_prompt,
                    "processing_type": context.processing_type.value,
                    "quality_level": context.quality_level.value,
                    "performance_priority": context.performance_priority.value,
                },
            )
        )

    async def _segment(
        self,
        image_bytes: bytes,
        user_prompt: str,
        context: ProcessingContext,
        token: CancellationToken | None,
    ) -> Result[ProcessingResult]:
        info = self.image_io.inspect(image_bytes)
        if info.is_failure:
            return Failure(info.error_or_none)
        image_info = info.value_or_none

        prompt = build_segmentation_prompt(user_prompt, context)
        segmented = await self.backend.segment(
            image_bytes,
            prompt,
            image_size=(image_info.width, image_info.height),
            token=token,
        )
        return segmented.map(
            lambda seg: ProcessingResult(
                processed_image_data=image_bytes,
                original_prompt=user_prompt,
                enhanced_prompt=prompt,
                processing_time=timedelta(0),
                job_id=str(uuid4()),
                segmentation=seg,
                metadata={
                    "processing_type": context.processing_type.value,
                    "mask_count": len(seg.masks),
                },
            )
        )
