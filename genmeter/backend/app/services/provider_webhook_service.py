# backend/app/services/provider_webhook_service.py
"""
Ingests signed status callbacks from the compute provider.

Deliveries are at-least-once and may arrive out of order. An event that
would move a record backwards, or to a status it already has, is dropped
without side effects.
"""
import hashlib
import hmac
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import PROVIDER_STATUS_MAP, GenerationStatus
from app.core.exceptions import (
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
    WebhookSignatureInvalidError,
    WebhookSignatureMissingError,
    WebhookUnconfiguredError,
)
from app.core.lifecycle import is_stale
from app.core.logging import logger
from app.db.repositories.generation_repository import GenerationRepository
from app.schemas.webhook import ProviderEvent, WebhookResult
from app.services.generation_service import GenerationService

_UNSET = object()


class ProviderWebhookService:
    """Verifies, parses and applies provider callbacks"""

    def __init__(
        self,
        session: AsyncSession,
        webhook_secret=_UNSET,
        generation_service: Optional[GenerationService] = None,
    ):
        self.session = session
        self.webhook_secret = settings.PROVIDER_WEBHOOK_SECRET if webhook_secret is _UNSET else webhook_secret
        self.generations = GenerationRepository(session)
        self.generation_service = generation_service or GenerationService(session)

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Check the HMAC-SHA256 of the raw body against the signature header.

        Args:
            payload: Raw request body, exactly as received
            signature: Header value, hex digest with an optional ``sha256=`` prefix
        """
        if not signature or not signature.strip():
            raise WebhookSignatureMissingError()

        if not self.webhook_secret:
            logger.error("Provider webhook secret not configured")
            raise WebhookUnconfiguredError()

        provided = signature.strip()
        if provided.lower().startswith("sha256="):
            provided = provided[len("sha256="):]

        expected = hmac.new(
            self.webhook_secret.encode(),
            payload,
            hashlib.sha256,
        ).hexdigest()

        if not hmac.compare_digest(provided.lower().encode(), expected.encode()):
            logger.warning("Provider webhook rejected: invalid signature")
            raise WebhookSignatureInvalidError()

    def parse_event(self, payload: bytes) -> ProviderEvent:
        try:
            return ProviderEvent.model_validate_json(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                "Malformed provider event",
                details={"errors": e.errors(include_url=False, include_input=False, include_context=False)},
            )

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """Verify first; nothing is parsed or looked up for an unsigned body"""
        self.verify_webhook_signature(payload, signature)
        event = self.parse_event(payload)
        return await self.apply_event(event)

    async def apply_event(self, event: ProviderEvent) -> WebhookResult:
        """Translate a provider event into a status update on the matching generation"""
        target = PROVIDER_STATUS_MAP[event.status]

        generation = await self.generations.get_by_external_id(event.id)
        if not generation:
            logger.warning(f"Provider event for unknown prediction {event.id}")
            raise NotFoundError(f"No generation for provider job {event.id}")

        current = GenerationStatus(generation.status)
        if is_stale(current, target):
            result = WebhookResult(
                applied=False,
                generation_id=str(generation.id),
                status=current.value,
                detail=f"Ignored {event.status.value}: generation already {current.value}",
            )
            logger.info(result.detail, extra={"generation_id": generation.id})
            return result

        generation_id = generation.id
        metrics = {}
        if event.predict_time is not None:
            metrics["provider_predict_time"] = event.predict_time

        try:
            generation = await self.generation_service.update_generation_status(
                generation_id,
                target,
                result_ref=event.first_output if target == GenerationStatus.COMPLETED else None,
                error=(event.error or "Generation failed") if target == GenerationStatus.FAILED else None,
                metrics=metrics,
            )
        except InvalidStatusTransitionError as e:
            # Another delivery settled the record after it was read
            logger.info(
                f"Ignored provider event {event.id}: {e.message}",
                extra={"generation_id": generation_id},
            )
            return WebhookResult(
                applied=False,
                generation_id=str(generation_id),
                status=e.current,
                detail=e.message,
            )

        return WebhookResult(applied=True, generation_id=str(generation.id), status=generation.status)
