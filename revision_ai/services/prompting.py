from __future__ import annotations

from revision_ai.models.context import (
    PerformancePriority,
    ProcessingContext,
    ProcessingType,
    QualityLevel,
)

_TYPE_DIRECTIVES: dict[ProcessingType, str] = {
    ProcessingType.ENHANCE: "Enhance the overall image: improve lighting, sharpness and color balance.",
    ProcessingType.ARTISTIC: "Apply an artistic transformation while keeping the composition recognizable.",
    ProcessingType.RESTORATION: "Restore the photo: remove scratches, noise and fading.",
    ProcessingType.COLOR_CORRECTION: "Correct white balance, exposure and color casts.",
    ProcessingType.OBJECT_REMOVAL: (
        "Remove the marked objects completely and reconstruct the background "
        "behind them so that no trace remains."
    ),
    ProcessingType.BACKGROUND_CHANGE: "Replace the background around the marked subject.",
    ProcessingType.FACE_EDIT: "Apply subtle, natural-looking edits to the faces in the image.",
    ProcessingType.SEGMENTATION: "Segment the requested objects.",
    ProcessingType.OBJECT_DETECTION: "Detect the requested objects.",
    ProcessingType.CUSTOM: "",
}

_QUALITY_HINTS: dict[QualityLevel, str] = {
    QualityLevel.DRAFT: "A quick draft is acceptable.",
    QualityLevel.STANDARD: "Produce a clean result at standard quality.",
    QualityLevel.HIGH: "Produce a high quality result with fine detail.",
    QualityLevel.PROFESSIONAL: "Produce a professional, print-ready result with no visible artifacts.",
}

_PRIORITY_HINTS: dict[PerformancePriority, str] = {
    PerformancePriority.SPEED: "Favor speed over detail.",
    PerformancePriority.BALANCED: "Balance speed and detail.",
    PerformancePriority.QUALITY: "Take whatever time is needed for the best quality.",
}

_PRESERVATION_RULE = "Preserve image resolution, perspective and visual coherence."


def describe_markers(context: ProcessingContext) -> list[str]:
    lines = []
    for idx, marker in enumerate(context.markers, start=1):
        label = marker.label or "marked area"
        if marker.x is not None and marker.y is not None:
            lines.append(f"{idx}. {label} at x={marker.x:.3f}, y={marker.y:.3f} (fraction of image size)")
        elif marker.bounding_box is not None:
            box = marker.bounding_box
            lines.append(
                f"{idx}. {label} in box [y0={box.y0:.0f}, x0={box.x0:.0f}, "
                f"y1={box.y1:.0f}, x1={box.x1:.0f}] (0-1000 scale)"
            )
    return lines


def build_segmentation_prompt(user_prompt: str, context: ProcessingContext) -> str:
    target = user_prompt.strip() or "all prominent objects"
    prompt = (
        f"Give the segmentation masks for {target}. "
        "Output a JSON list of segmentation masks where each entry contains the 2D "
        'bounding box in the key "box_2d", the segmentation mask in key "mask", '
        'and the text label in the key "label".'
    )
    marker_lines = describe_markers(context)
    if marker_lines:
        prompt += "\n\nOnly segment objects at these marked areas:\n" + "\n".join(marker_lines)
    return prompt


def build_instruction_prompt(
    user_prompt: str,
    analysis_prompt: str,
    context: ProcessingContext,
) -> str:
    """
    Compose the prompt sent to the image generation call.

    Sections, in order: processing directive, the user's request, the
    backend's own analysis, marked areas, quality hints, custom and
    edit-model instructions.
    """
    parts: list[str] = []

    directive = _TYPE_DIRECTIVES[context.processing_type]
    if directive:
        parts.append(directive)

    if user_prompt.strip():
        parts.append(f"User request: {user_prompt.strip()}")

    if analysis_prompt.strip():
        parts.append(f"Analysis: {analysis_prompt.strip()}")

    marker_lines = describe_markers(context)
    if marker_lines:
        parts.append("Marked areas:\n" + "\n".join(marker_lines))

    parts.append(_QUALITY_HINTS[context.quality_level])
    parts.append(_PRIORITY_HINTS[context.performance_priority])
    parts.append(_PRESERVATION_RULE)

    if context.custom_instructions:
        parts.append(context.custom_instructions.strip())
    if context.edit_system_instructions:
        parts.append(context.edit_system_instructions.strip())
    if context.target_format:
        parts.append(f"Return the image as {context.target_format}.")

    return "\n\n".join(parts)
