"""Image generation API routes."""
from typing import Annotated, Any

from fastapi import APIRouter, Body, Request

from imagegate.api.deps import CurrentUser, Db, Gemini
from imagegate.schemas.generation import GenerateResponse, ModelInfo
from imagegate.services.generation_service import GenerationService
from imagegate.services.pricing import MODELS
from imagegate.utils.rate_limiter import rate_limit_generate

router = APIRouter()


@router.post("/generate", response_model=GenerateResponse)
@rate_limit_generate()
async def generate_images(
    request: Request,
    current_user: CurrentUser,
    db: Db,
    client: Gemini,
    payload: Annotated[Any, Body()] = None,
):
    """Generate, edit or inpaint images and charge for what was delivered.

    The body is validated by the generation service, so that a malformed
    request from an authenticated user is still audited.
    """
    outcome = await GenerationService(db, client).generate(current_user, payload)
    return GenerateResponse(
        data_urls=outcome.data_urls,
        credits_used=outcome.credits_used,
        remaining_credits=outcome.remaining_credits,
        requested_count=outcome.requested_count,
        actual_count=outcome.actual_count,
        model=outcome.model,
        operation=outcome.operation.value,
    )


@router.get("/models", response_model=list[ModelInfo])
async def list_models():
    """Priced models and the sizing hints each accepts."""
    return [
        ModelInfo(
            name=spec.name,
            label=spec.label,
            credits_per_image=spec.credits_per_image,
            supports_aspect_ratio=spec.supports_aspect_ratio,
            supports_image_size=spec.supports_image_size,
        )
        for spec in MODELS.values()
    ]
