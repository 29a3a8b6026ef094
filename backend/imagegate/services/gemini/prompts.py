"""Instruction templates and request assembly for image generation."""
import logging
from dataclasses import dataclass, field
from typing import Any

from imagegate.models.transaction import Operation
from imagegate.schemas.generation import GenerateRequest, ImageInput
from imagegate.services.pricing import ModelSpec, clamp_candidate_count

log = logging.getLogger(__name__)

GENERATE_INSTRUCTION = (
    "You are an image generation engine embedded in a photo editor. "
    "Create a new image that follows the user prompt. "
    "Images labelled REFERENCE_n are style or subject references only; "
    "do not copy them verbatim. Return only the image, without text."
)

EDIT_INSTRUCTION = (
    "You are an image editing engine embedded in a photo editor. "
    "Modify the image labelled BASE_IMAGE according to the user prompt. "
    "Keep everything the prompt does not mention unchanged: composition, "
    "lighting, perspective and identity of subjects. Images labelled "
    "REFERENCE_n are references for the requested change. "
    "Return only the edited image, without text."
)

INPAINT_INSTRUCTION = (
    "You are an inpainting engine embedded in a photo editor. "
    "The image labelled BASE_CROP is a crop of the user's canvas and the image "
    "labelled MASK marks the region to repaint: white pixels must be replaced, "
    "black pixels must be preserved exactly. Blend the new content seamlessly "
    "with the surrounding pixels, matching light, grain and perspective. "
    "Images labelled REFERENCE_n are references for the new content. "
    "Return only the full repainted crop at the same size, without text."
)

INSTRUCTIONS: dict[Operation, str] = {
    Operation.GENERATE: GENERATE_INSTRUCTION,
    Operation.EDIT: EDIT_INSTRUCTION,
    Operation.INPAINT: INPAINT_INSTRUCTION,
}


@dataclass
class CompiledPrompt:
    """Ordered content parts plus generation config, in wire format."""
    instruction: str
    parts: list[dict[str, Any]] = field(default_factory=list)
    generation_config: dict[str, Any] = field(default_factory=dict)

    def to_request_body(self) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": self.parts}],
            "generationConfig": self.generation_config,
        }


def text_part(text: str) -> dict[str, Any]:
    return {"text": text}


def image_part(mime_type: str, data: str) -> dict[str, Any]:
    return {"inlineData": {"mimeType": mime_type, "data": data}}


def _append_image(parts: list[dict[str, Any]], caption: str, image: ImageInput | None) -> bool:
    """Append caption + image; skip silently when the image is incomplete."""
    resolved = image.resolved() if image is not None else None
    if resolved is None:
        log.debug("Skipping incomplete image for %s", caption.split(":", 1)[0])
        return False
    mime_type, data = resolved
    parts.append(text_part(caption))
    parts.append(image_part(mime_type, data))
    return True


def build_generation_config(
    spec: ModelSpec,
    candidate_count: int | None,
    aspect_ratio: str | None = None,
    resolution: str | None = None,
) -> dict[str, Any]:
    """Build generationConfig; hints the model does not accept are dropped."""
    config: dict[str, Any] = {
        "responseModalities": ["IMAGE"],
        "candidateCount": clamp_candidate_count(candidate_count),
    }
    image_config: dict[str, Any] = {}
    if spec.supports_aspect_ratio and aspect_ratio and aspect_ratio.strip():
        image_config["aspectRatio"] = aspect_ratio.strip()
    if spec.supports_image_size and resolution and resolution.strip():
        image_config["imageSize"] = resolution.strip().upper()
    if image_config:
        config["imageConfig"] = image_config
    return config


def compile_prompt(
    operation: Operation | str | None,
    payload: GenerateRequest,
    spec: ModelSpec,
) -> CompiledPrompt:
    """Assemble the ordered parts for one generation request.

    Part order matters: the model tells images apart by the caption that
    immediately precedes each one.
    """
    if not isinstance(operation, Operation):
        operation = Operation.for_generation(operation)
    instruction = INSTRUCTIONS.get(operation, GENERATE_INSTRUCTION)

    parts: list[dict[str, Any]] = [text_part(instruction)]

    for i, ref in enumerate(payload.reference_images or [], start=1):
        _append_image(
            parts,
            f"REFERENCE_{i}: reference image {i}, use it as guidance for the result.",
            ref,
        )

    has_mask = payload.mask_image is not None and payload.mask_image.resolved() is not None
    has_base = payload.base_image is not None and payload.base_image.resolved() is not None

    if operation is Operation.INPAINT and has_mask and has_base:
        _append_image(
            parts,
            "MASK: white marks the region to repaint, black must stay untouched.",
            payload.mask_image,
        )
        _append_image(
            parts,
            "BASE_CROP: the original pixels around and under the masked region.",
            payload.base_image,
        )
    elif operation is Operation.EDIT and has_base:
        _append_image(parts, "BASE_IMAGE: the image to edit.", payload.base_image)

    parts.append(text_part(f"USER_PROMPT: {payload.prompt or ''}"))

    return CompiledPrompt(
        instruction=instruction,
        parts=parts,
        generation_config=build_generation_config(
            spec,
            payload.candidate_count,
            aspect_ratio=payload.aspect_ratio,
            resolution=payload.resolution,
        ),
    )
