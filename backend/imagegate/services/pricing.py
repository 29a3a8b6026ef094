"""Image model catalog and credit pricing."""
from dataclasses import dataclass

from imagegate.errors import ErrorKind, ServiceError

MIN_CANDIDATES = 1
MAX_CANDIDATES = 4


@dataclass(frozen=True)
class ModelSpec:
    """A priced generation model and the sizing hints it understands."""
    name: str
    label: str
    credits_per_image: int
    supports_aspect_ratio: bool = False
    supports_image_size: bool = False


FLASH_IMAGE = ModelSpec(
    name="gemini-2.5-flash-image",
    label="Nano Banana",
    credits_per_image=4,
    supports_aspect_ratio=True,
)

PRO_IMAGE = ModelSpec(
    name="gemini-3-pro-image-preview",
    label="Nano Banana Pro",
    credits_per_image=8,
    supports_aspect_ratio=True,
    supports_image_size=True,
)

MODELS: dict[str, ModelSpec] = {spec.name: spec for spec in (FLASH_IMAGE, PRO_IMAGE)}


def get_model_spec(model: str | None) -> ModelSpec:
    """Get model spec by identifier."""
    spec = MODELS.get((model or "").strip())
    if spec is None:
        valid = sorted(MODELS)
        raise ServiceError(
            ErrorKind.INVALID_MODEL,
            f"Invalid model '{model}'. Valid models: {', '.join(valid)}",
            validModels=valid,
        )
    return spec


def clamp_candidate_count(count: int | None) -> int:
    """Clamp a requested variation count to the range the backend accepts."""
    if count is None:
        return MIN_CANDIDATES
    return max(MIN_CANDIDATES, min(MAX_CANDIDATES, int(count)))


def price_of(model: str | None, count: int | None) -> int:
    """Total credits for ``count`` images of ``model``."""
    spec = get_model_spec(model)
    return spec.credits_per_image * clamp_candidate_count(count)


def cost_for_delivered(model: str, delivered: int) -> int:
    """Credits owed for images actually delivered (no clamping to 1)."""
    spec = get_model_spec(model)
    return spec.credits_per_image * max(0, int(delivered))
