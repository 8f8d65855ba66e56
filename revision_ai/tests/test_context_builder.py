import pytest

from revision_ai.models.context import (
    PerformancePriority,
    ProcessingContext,
    ProcessingType,
    QualityLevel,
)
from revision_ai.models.markers import ImageMarker
from revision_ai.services.context_builder import ProcessingContextBuilder

MARKER = ImageMarker.user_point("p1", 0.5, 0.5)


@pytest.mark.parametrize(
    "quality, priority, expected",
    [
        (QualityLevel.PROFESSIONAL, PerformancePriority.SPEED, QualityLevel.STANDARD),
        (QualityLevel.HIGH, PerformancePriority.SPEED, QualityLevel.STANDARD),
        (QualityLevel.PROFESSIONAL, PerformancePriority.BALANCED, QualityLevel.HIGH),
        (QualityLevel.PROFESSIONAL, PerformancePriority.QUALITY, QualityLevel.PROFESSIONAL),
        (QualityLevel.DRAFT, PerformancePriority.SPEED, QualityLevel.DRAFT),
        (QualityLevel.HIGH, PerformancePriority.BALANCED, QualityLevel.HIGH),
    ],
)
def test_quality_downgrades(quality, priority, expected):
    context = ProcessingContextBuilder.build(ProcessingType.ENHANCE, quality, priority)
    assert context.quality_level is expected
    assert context.performance_priority is priority
    assert context.validated


@pytest.mark.parametrize("processing_type", [ProcessingType.OBJECT_REMOVAL, ProcessingType.BACKGROUND_CHANGE])
def test_marker_types_fall_back_to_enhance_without_markers(processing_type):
    bare = ProcessingContextBuilder.build(processing_type, QualityLevel.STANDARD, PerformancePriority.BALANCED)
    assert bare.processing_type is ProcessingType.ENHANCE

    marked = ProcessingContextBuilder.build(
        processing_type, QualityLevel.STANDARD, PerformancePriority.BALANCED, [MARKER]
    )
    assert marked.processing_type is processing_type
    assert marked.markers == (MARKER,)


def test_type_and_quality_rules_apply_independently():
    context = ProcessingContextBuilder.build(
        ProcessingType.OBJECT_REMOVAL, QualityLevel.PROFESSIONAL, PerformancePriority.SPEED
    )
    assert context.processing_type is ProcessingType.ENHANCE
    assert context.quality_level is QualityLevel.STANDARD


def test_validate_runs_untrusted_contexts_through_rules():
    raw = ProcessingContext(
        processing_type=ProcessingType.BACKGROUND_CHANGE,
        quality_level=QualityLevel.HIGH,
        performance_priority=PerformancePriority.SPEED,
    )
    assert not raw.validated

    checked = ProcessingContextBuilder.validate(raw)
    assert checked.validated
    assert checked.processing_type is ProcessingType.ENHANCE
    assert checked.quality_level is QualityLevel.STANDARD
    assert ProcessingContextBuilder.validate(checked) is checked


def test_copy_with_invalidates():
    context = ProcessingContextBuilder.build(
        ProcessingType.ENHANCE, QualityLevel.STANDARD, PerformancePriority.BALANCED
    )
    changed = context.copy_with(quality_level=QualityLevel.PROFESSIONAL)
    assert not changed.validated
    assert changed.quality_level is QualityLevel.PROFESSIONAL


def test_is_valid_combination():
    assert ProcessingContextBuilder.is_valid_combination(
        ProcessingType.ENHANCE, QualityLevel.HIGH, PerformancePriority.BALANCED
    )
    assert not ProcessingContextBuilder.is_valid_combination(
        ProcessingType.OBJECT_REMOVAL, QualityLevel.STANDARD, PerformancePriority.BALANCED
    )
    assert ProcessingContextBuilder.is_valid_combination(
        ProcessingType.OBJECT_REMOVAL, QualityLevel.STANDARD, PerformancePriority.BALANCED, [MARKER]
    )
    assert not ProcessingContextBuilder.is_valid_combination(
        ProcessingType.ENHANCE, QualityLevel.PROFESSIONAL, PerformancePriority.SPEED
    )


def test_recommended_type():
    assert ProcessingContextBuilder.get_recommended_type([]) is ProcessingType.ENHANCE
    assert ProcessingContextBuilder.get_recommended_type([MARKER]) is ProcessingType.OBJECT_REMOVAL


def test_custom_type_needs_detailed_instructions():
    with pytest.raises(ValueError):
        ProcessingContext(
            processing_type=ProcessingType.CUSTOM,
            quality_level=QualityLevel.STANDARD,
            performance_priority=PerformancePriority.BALANCED,
            custom_instructions="short",
        )
    context = ProcessingContextBuilder.build(
        ProcessingType.CUSTOM,
        QualityLevel.STANDARD,
        PerformancePriority.BALANCED,
        custom_instructions="Make it look like a watercolor painting",
    )
    assert context.processing_type is ProcessingType.CUSTOM


def test_factories():
    assert ProcessingContext.quick_enhance().performance_priority is PerformancePriority.SPEED
    assert ProcessingContext.restoration().processing_type is ProcessingType.RESTORATION
    assert ProcessingContext.professional_edit(ProcessingType.FACE_EDIT).quality_level is QualityLevel.PROFESSIONAL
    assert ProcessingContext.artistic_transform().quality_level is QualityLevel.HIGH
