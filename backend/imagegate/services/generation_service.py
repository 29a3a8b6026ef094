"""Credit-metered image generation workflow."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from imagegate.database import Database
from imagegate.errors import ErrorKind, ServiceError
from imagegate.models.transaction import Operation
from imagegate.models.user import User
from imagegate.schemas.generation import GenerateRequest, parse_generate_request
from imagegate.services.billing_service import BillingService
from imagegate.services.gemini import GeminiClient, compile_prompt
from imagegate.services.pricing import (
    MIN_CANDIDATES,
    clamp_candidate_count,
    get_model_spec,
    price_of,
)

log = logging.getLogger(__name__)


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class Stage(str, Enum):
    """Where a request is in the workflow."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    PRICED = "priced"
    AUTHORIZED = "authorized"
    GENERATED = "generated"
    SETTLED = "settled"
    ERRORED = "errored"


@dataclass
class GenerationOutcome:
    """Everything the endpoint needs to answer a settled request."""
    data_urls: list[str]
    credits_used: int
    remaining_credits: int
    requested_count: int
    actual_count: int
    model: str
    operation: Operation


class GenerationService:
    """Sequences pricing, the credit check, the upstream call and billing.

    Authentication happens before this service is involved; every failure
    here has a user context and therefore leaves a failure transaction.
    """

    def __init__(self, db: Database, client: GeminiClient, billing: BillingService | None = None):
        self.db = db
        self.client = client
        self.billing = billing or BillingService(db)

    def _advance(self, user: User, stage: Stage) -> Stage:
        log.debug("generation user=%s stage=%s", user.id, stage.value)
        return stage

    async def generate(self, user: User, body: GenerateRequest | Any) -> GenerationOutcome:
        """Run one request from a raw (or already parsed) /generate body."""
        try:
            payload = parse_generate_request(body)
        except ServiceError as exc:
            self._advance(user, Stage.ERRORED)
            raw = body if isinstance(body, dict) else {}
            await self.billing.record_failure(
                user,
                Operation.for_generation(_text(raw.get("operation"))),
                _text(raw.get("model")),
                MIN_CANDIDATES,
                _text(raw.get("prompt")),
                exc.message,
            )
            raise
        return await self._run(user, payload)

    async def _run(self, user: User, payload: GenerateRequest) -> GenerationOutcome:
        operation = Operation.for_generation(payload.operation)
        requested = clamp_candidate_count(payload.candidate_count)
        stage = self._advance(user, Stage.AUTHENTICATED)

        try:
            model = (payload.model or "").strip()
            prompt = (payload.prompt or "").strip()
            if not model or not prompt:
                raise ServiceError(ErrorKind.INVALID_INPUT, "Both model and prompt are required")

            model_spec = get_model_spec(model)
            total_cost = price_of(model_spec.name, requested)
            stage = self._advance(user, Stage.PRICED)

            if user.credits_balance < total_cost:
                raise ServiceError(
                    ErrorKind.INSUFFICIENT_CREDITS,
                    "Insufficient credits",
                    required=total_cost,
                    available=user.credits_balance,
                )
            stage = self._advance(user, Stage.AUTHORIZED)

            compiled = compile_prompt(operation, payload, model_spec)
            images = await self.client.generate_images(model_spec.name, compiled)
            stage = self._advance(user, Stage.GENERATED)
        except ServiceError as exc:
            log.info(
                "Generation for user %s failed at %s: %s (%s)",
                user.id, stage.value, exc.message, exc.kind.value,
            )
            self._advance(user, Stage.ERRORED)
            await self.billing.record_failure(
                user, operation, payload.model, requested, payload.prompt, exc.message,
            )
            raise
        except Exception as exc:
            log.exception("Unexpected error during generation for user %s at %s", user.id, stage.value)
            self._advance(user, Stage.ERRORED)
            await self.billing.record_failure(
                user, operation, payload.model, requested, payload.prompt,
                f"Internal error: {type(exc).__name__}",
            )
            raise

        if len(images) > requested:
            log.info(
                "Upstream returned %d images for %d requested; keeping the first %d",
                len(images), requested, requested,
            )
            images = images[:requested]
        data_urls = [image.data_url for image in images]
        actual = len(images)

        try:
            credits_used, remaining = await self.billing.settle(
                user, operation, model_spec.name, requested, actual, prompt,
            )
        except (ServiceError, SQLAlchemyError) as err:
            exc = err if isinstance(err, ServiceError) else ServiceError(
                ErrorKind.BILLING_CONFLICT,
                "Could not charge credits for the generated images",
            )
            log.critical(
                "BILLING UNRESOLVED: user %s received %d image(s) from %s but was not charged: %s",
                user.id, actual, model_spec.name, err,
            )
            await self.billing.record_failure(
                user, operation, model_spec.name, requested, prompt,
                f"Billing failed after generation: {exc.message}",
                actual_count=actual,
            )
            exc.details.update(
                dataUrls=data_urls,
                requestedCount=requested,
                actualCount=actual,
            )
            if exc is err:
                raise
            raise exc from err

        self._advance(user, Stage.SETTLED)
        return GenerationOutcome(
            data_urls=data_urls,
            credits_used=credits_used,
            remaining_credits=remaining,
            requested_count=requested,
            actual_count=actual,
            model=model_spec.name,
            operation=operation,
        )
