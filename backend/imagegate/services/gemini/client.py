"""Gemini image generation API client."""
import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from imagegate.config import get_settings
from imagegate.errors import ErrorKind, ServiceError
from imagegate.services.gemini.models import (
    Candidate,
    GenerateContentResponse,
    GeneratedImage,
)
from imagegate.services.gemini.prompts import CompiledPrompt
from imagegate.services.pricing import get_model_spec

log = logging.getLogger(__name__)

SAFETY_KEYWORDS = ("safety", "blocked", "prohibited", "harm")


def _is_safety_message(message: str) -> bool:
    lowered = message.lower()
    return any(word in lowered for word in SAFETY_KEYWORDS)


def _error_message(response: httpx.Response) -> str:
    """Pull the message out of an error body, or fall back to the status line."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return f"{response.status_code} {response.reason_phrase}".strip()


class GeminiClient:
    """Client for the Gemini generateContent REST API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout_seconds = timeout if timeout is not None else settings.gemini_timeout_seconds
        self.timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        self.transport = transport

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    async def _post(self, model: str, body: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(
                f"{self.base_url}/v1beta/models/{model}:generateContent",
                headers=self._get_headers(),
                json=body,
            )

    async def generate_images(self, model: str, compiled: CompiledPrompt) -> list[GeneratedImage]:
        """
        Run one generation call and extract the usable images.

        API Endpoint: POST /v1beta/models/{model}:generateContent

        Args:
            model: Priced model identifier
            compiled: Parts and generation config from ``compile_prompt``

        Returns:
            Surviving images in upstream candidate order. The list may be
            shorter than the requested candidate count.
        """
        spec = get_model_spec(model)
        if compiled is None or not compiled.parts:
            raise ServiceError(ErrorKind.INVALID_INPUT, "Prompt is required")

        try:
            response = await asyncio.wait_for(
                self._post(spec.name, compiled.to_request_body()),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            log.warning("Gemini call timed out after %.0fs (model=%s)", self.timeout_seconds, spec.name)
            raise ServiceError(
                ErrorKind.TIMEOUT,
                "Image generation timed out, try a simpler request or fewer variations",
            ) from exc
        except httpx.HTTPError as exc:
            log.warning("Gemini transport error (model=%s): %s", spec.name, exc)
            raise ServiceError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                "Image generation service unreachable",
            ) from exc

        if not response.is_success:
            raise self._classify_failure(response)

        try:
            result = GenerateContentResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ServiceError(
                ErrorKind.UPSTREAM_ERROR,
                "Malformed response from image generation service",
            ) from exc

        return self.extract_images(result)

    def _classify_failure(self, response: httpx.Response) -> ServiceError:
        message = _error_message(response)
        log.warning("Gemini returned %s: %s", response.status_code, message)
        if _is_safety_message(message):
            return ServiceError(
                ErrorKind.CONTENT_REJECTED,
                "The request was rejected by the content safety filter",
                upstreamMessage=message,
            )
        if response.status_code == 429 or response.status_code >= 500:
            return ServiceError(ErrorKind.UPSTREAM_UNAVAILABLE, message, upstreamStatus=response.status_code)
        return ServiceError(ErrorKind.UPSTREAM_ERROR, message, upstreamStatus=response.status_code)

    @staticmethod
    def extract_images(result: GenerateContentResponse) -> list[GeneratedImage]:
        """Filter candidates down to those carrying an image."""
        if not result.candidates:
            feedback = result.prompt_feedback
            if feedback is not None and feedback.block_reason:
                raise ServiceError(
                    ErrorKind.CONTENT_REJECTED,
                    "The prompt was rejected by the content safety filter",
                    blockReason=feedback.block_reason,
                )
            raise ServiceError(ErrorKind.NO_CANDIDATES, "The model returned no results")

        images: list[GeneratedImage] = []
        for position, raw in enumerate(result.candidates):
            try:
                candidate = Candidate.model_validate(raw)
            except ValidationError:
                log.warning("Candidate %d is malformed, skipping", position)
                continue

            if candidate.is_safety_rejected:
                log.info("Candidate %d dropped: finishReason=%s", position, candidate.finish_reason)
                continue

            inline = candidate.image
            if inline is None:
                log.warning(
                    "Candidate %d has no inline image (finishReason=%s, text=%r)",
                    position, candidate.finish_reason, candidate.text[:200],
                )
                continue

            mime_type = inline.mime_type or "image/png"
            images.append(
                GeneratedImage(
                    data_url=f"data:{mime_type};base64,{inline.data}",
                    mime_type=mime_type,
                    raw_candidate=raw,
                )
            )

        if not images:
            raise ServiceError(
                ErrorKind.NO_VALID_IMAGES,
                "The model did not return any usable image",
                candidates=len(result.candidates),
            )
        return images
