"""Generation schemas for request/response validation."""
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from imagegate.errors import ErrorKind, ServiceError


class ImageInput(BaseModel):
    """An inline image sent by the plugin: base64 payload plus MIME type.

    ``data`` may also be a ``data:<mime>;base64,<payload>`` URL.
    """
    data: str | None = None
    mime_type: str | None = Field(None, alias="mimeType")

    model_config = {"populate_by_name": True}

    def resolved(self) -> tuple[str, str] | None:
        """Return ``(mime_type, base64_data)``, or None when either is missing."""
        data = (self.data or "").strip()
        mime_type = (self.mime_type or "").strip()
        if data.startswith("data:") and "," in data:
            header, data = data.split(",", 1)
            if not mime_type:
                mime_type = header[5:].split(";", 1)[0].strip()
        if not data or not mime_type:
            return None
        return mime_type, data


class GenerateRequest(BaseModel):
    """Body of POST /generate.

    ``model`` and ``prompt`` are optional here so that their absence is
    reported (and audited) by the generation service rather than rejected
    before the user is known.
    """
    model: str | None = None
    prompt: str | None = None
    operation: str | None = None
    reference_images: list[ImageInput] | None = Field(None, alias="referenceImages")
    base_image: ImageInput | None = Field(None, alias="baseImage")
    mask_image: ImageInput | None = Field(None, alias="maskImage")
    aspect_ratio: str | None = Field(None, alias="aspectRatio")
    resolution: str | None = None
    candidate_count: int | None = Field(None, alias="candidateCount")

    model_config = {"populate_by_name": True}


def parse_generate_request(body: Any) -> GenerateRequest:
    """Validate a raw /generate body; failures become INVALID_INPUT."""
    if isinstance(body, GenerateRequest):
        return body
    try:
        return GenerateRequest.model_validate(body if body is not None else {})
    except ValidationError as exc:
        raise ServiceError(
            ErrorKind.INVALID_INPUT,
            "Invalid request",
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc


class GenerateResponse(BaseModel):
    """Successful generation result."""
    data_urls: list[str] = Field(alias="dataUrls")
    credits_used: int = Field(alias="creditsUsed")
    remaining_credits: int = Field(alias="remainingCredits")
    requested_count: int = Field(alias="requestedCount")
    actual_count: int = Field(alias="actualCount")
    model: str
    operation: str

    model_config = {"populate_by_name": True}


class ModelInfo(BaseModel):
    """Catalog entry exposed to the plugin."""
    name: str
    label: str
    credits_per_image: int = Field(alias="creditsPerImage")
    supports_aspect_ratio: bool = Field(alias="supportsAspectRatio")
    supports_image_size: bool = Field(alias="supportsImageSize")

    model_config = {"populate_by_name": True}
