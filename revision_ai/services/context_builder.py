from __future__ import annotations

from typing import Sequence

from loguru import logger

from revision_ai.models.context import (
    PerformancePriority,
    ProcessingContext,
    ProcessingType,
    QualityLevel,
)
from revision_ai.models.markers import ImageMarker

# (quality, priority) -> adjusted quality; first match wins
_QUALITY_DOWNGRADES: dict[tuple[QualityLevel, PerformancePriority], QualityLevel] = {
    (QualityLevel.PROFESSIONAL, PerformancePriority.SPEED): QualityLevel.STANDARD,
    (QualityLevel.HIGH, PerformancePriority.SPEED): QualityLevel.STANDARD,
    (QualityLevel.PROFESSIONAL, PerformancePriority.BALANCED): QualityLevel.HIGH,
}


class ProcessingContextBuilder:
    """
    Builds ``ProcessingContext`` values that respect the business rules for
    legal option combinations.

    - Object removal and background change need at least one marker;
      without markers they fall back to ``enhance``.
    - Speed priority caps quality at ``standard``.
    - Professional quality needs ``quality`` priority; with ``balanced`` it
      drops to ``high``.
    """

    @staticmethod
    def build(
        processing_type: ProcessingType,
        quality: QualityLevel,
        priority: PerformancePriority,
        markers: Sequence[ImageMarker] = (),
        prompt_instructions: str | None = None,
        edit_instructions: str | None = None,
        custom_instructions: str | None = None,
        target_format: str | None = None,
    ) -> ProcessingContext:
        adjusted_type = ProcessingContextBuilder._validate_processing_type(processing_type, markers)
        adjusted_quality = ProcessingContextBuilder._validate_quality_settings(quality, priority)

        if adjusted_type is not processing_type:
            logger.info(f"Processing type {processing_type.value} needs markers, using {adjusted_type.value}")
        if adjusted_quality is not quality:
            logger.info(
                f"Quality {quality.value} not supported with {priority.value} priority, "
                f"using {adjusted_quality.value}"
            )

        return ProcessingContext(
            processing_type=adjusted_type,
            quality_level=adjusted_quality,
            performance_priority=priority,
            markers=tuple(markers),
            custom_instructions=custom_instructions,
            target_format=target_format,
            prompt_system_instructions=prompt_instructions,
            edit_system_instructions=edit_instructions,
            validated=True,
        )

    @staticmethod
    def validate(context: ProcessingContext) -> ProcessingContext:
        """Run an untrusted (directly constructed) context through the rules."""
        if context.validated:
            return context
        return ProcessingContextBuilder.build(
            context.processing_type,
            context.quality_level,
            context.performance_priority,
            context.markers,
            prompt_instructions=context.prompt_system_instructions,
            edit_instructions=context.edit_system_instructions,
            custom_instructions=context.custom_instructions,
            target_format=context.target_format,
        )

    @staticmethod
    def _validate_quality_settings(
        quality: QualityLevel,
        priority: PerformancePriority,
    ) -> QualityLevel:
        return _QUALITY_DOWNGRADES.get((quality, priority), quality)

    @staticmethod
    def _validate_processing_type(
        processing_type: ProcessingType,
        markers: Sequence[ImageMarker],
    ) -> ProcessingType:
        if processing_type.requires_markers and not markers:
            return ProcessingType.ENHANCE
        return processing_type

    @staticmethod
    def get_recommended_type(markers: Sequence[ImageMarker]) -> ProcessingType:
        """UI default only; never overrides an explicit user choice."""
        if not markers:
            return ProcessingType.ENHANCE
        return ProcessingType.OBJECT_REMOVAL

    @staticmethod
    def is_valid_combination(
        processing_type: ProcessingType,
        quality: QualityLevel,
        priority: PerformancePriority,
        markers: Sequence[ImageMarker] = (),
    ) -> bool:
        if processing_type.requires_markers and not markers:
            return False
        if quality is QualityLevel.PROFESSIONAL and priority is PerformancePriority.SPEED:
            return False
        return True
