"""Gemini generateContent response models."""
from typing import Any

from pydantic import BaseModel, Field

SAFETY_FINISH_REASONS = frozenset({
    "SAFETY",
    "PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
    "IMAGE_SAFETY",
    "IMAGE_PROHIBITED_CONTENT",
})


class InlineData(BaseModel):
    """Base64 payload embedded in a response part."""
    mime_type: str | None = Field(None, alias="mimeType")
    data: str | None = None

    model_config = {"populate_by_name": True}


class Part(BaseModel):
    """One content part: text or inline binary."""
    text: str | None = None
    inline_data: InlineData | None = Field(None, alias="inlineData")

    model_config = {"populate_by_name": True}


class Content(BaseModel):
    role: str | None = None
    parts: list[Part] = Field(default_factory=list)


class Candidate(BaseModel):
    """A single proposed output.

    The API reports finish reasons such as STOP, MAX_TOKENS, SAFETY or
    IMAGE_SAFETY; anything in ``SAFETY_FINISH_REASONS`` counts as rejected.
    """
    content: Content | None = None
    finish_reason: str | None = Field(None, alias="finishReason")
    index: int | None = None

    model_config = {"populate_by_name": True}

    @property
    def is_safety_rejected(self) -> bool:
        return (self.finish_reason or "").upper() in SAFETY_FINISH_REASONS

    @property
    def image(self) -> InlineData | None:
        """First inline image in the candidate, if any."""
        if self.content is None:
            return None
        for part in self.content.parts:
            inline = part.inline_data
            if inline is not None and inline.data:
                return inline
        return None

    @property
    def text(self) -> str:
        if self.content is None:
            return ""
        return "".join(part.text for part in self.content.parts if part.text)


class PromptFeedback(BaseModel):
    block_reason: str | None = Field(None, alias="blockReason")
    block_reason_message: str | None = Field(None, alias="blockReasonMessage")

    model_config = {"populate_by_name": True}


class GenerateContentResponse(BaseModel):
    """Top-level success body.

    ``candidates`` is kept raw so callers can return the untouched upstream
    candidate alongside the extracted image, and so one malformed entry is
    dropped on its own rather than failing the whole response.
    """
    candidates: list[Any] | None = Field(default_factory=list)
    prompt_feedback: PromptFeedback | None = Field(None, alias="promptFeedback")
    model_version: str | None = Field(None, alias="modelVersion")

    model_config = {"populate_by_name": True}


class GeneratedImage(BaseModel):
    """An extracted image ready to hand back to the plugin."""
    data_url: str
    mime_type: str
    raw_candidate: dict[str, Any]
