# backend/app/services/dispatcher.py
from typing import Dict, Any, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import PENDING_QUEUE_BATCH_SIZE, PROVIDER_STATUS_MAP, GenerationStatus
from app.core.exceptions import (
    ConcurrentUpdateError,
    InvalidStatusTransitionError,
    ProviderError,
    ValidationError,
)
from app.core.logging import logger
from app.db.models.generation import Generation
from app.services.generation_service import GenerationService
from app.services.provider_client import ProviderClient
from app.services.provider_webhook_service import ProviderWebhookService


def build_provider_input(generation: Generation) -> Dict[str, Any]:
    """Model input for a generation: prompt, images and the optional knobs"""
    params = generation.parameters or {}
    inputs: Dict[str, Any] = {
        "prompt": generation.prompt,
        "image": generation.product_image_ref,
    }
    if generation.model_image_ref:
        inputs["model_image"] = generation.model_image_ref
    for key in ("style", "quality", "aspect_ratio", "seed"):
        if params.get(key) is not None:
            inputs[key] = params[key]
    return inputs


class GenerationDispatcher:
    """Hands pending generations to the compute provider and polls them back"""

    def __init__(
        self,
        session: AsyncSession,
        provider: Optional[ProviderClient] = None,
        generation_service: Optional[GenerationService] = None,
    ):
        self.session = session
        self.provider = provider or ProviderClient()
        self.generation_service = generation_service or GenerationService(session)

    async def dispatch_generation(self, generation_id: UUID, user_id: Optional[UUID] = None) -> Generation:
        """
        Submit a pending generation and move it to processing.

        A provider rejection fails the generation so that it can be retried.
        """
        generation = await self.generation_service.get_generation(generation_id, user_id)
        if generation.status != GenerationStatus.PENDING.value:
            raise InvalidStatusTransitionError(generation.status, GenerationStatus.PROCESSING.value)
        model, inputs = generation.model, build_provider_input(generation)

        # No transaction stays open across the provider round trip
        await self.session.commit()

        try:
            prediction = await self.provider.create_prediction(model, inputs)
        except ProviderError as e:
            logger.error(
                f"Dispatch of generation {generation_id} failed: {e.message}",
                extra={"generation_id": generation_id},
            )
            return await self.generation_service.update_generation_status(
                generation_id, GenerationStatus.FAILED, error=e.message
            )

        try:
            generation = await self.generation_service.update_generation_status(
                generation_id, GenerationStatus.PROCESSING, external_id=prediction.id
            )
        except (InvalidStatusTransitionError, ConcurrentUpdateError):
            # Settled locally while the provider call was in flight
            await self._cancel_remote(generation_id, prediction.id)
            raise

        # Provider may already report a terminal state
        if PROVIDER_STATUS_MAP[prediction.status] != GenerationStatus.PROCESSING:
            await ProviderWebhookService(
                self.session, generation_service=self.generation_service
            ).apply_event(prediction)
            generation = await self.generation_service.get_generation(generation_id)

        return generation

    async def dispatch_pending(self, limit: int = PENDING_QUEUE_BATCH_SIZE) -> List[Generation]:
        """Dispatch up to ``limit`` of the oldest pending generations"""
        pending = await self.generation_service.get_pending_generations(limit)
        dispatched = []
        for generation_id in [generation.id for generation in pending]:
            try:
                dispatched.append(await self.dispatch_generation(generation_id))
            except InvalidStatusTransitionError:
                logger.info(f"Generation {generation_id} was picked up elsewhere", extra={"generation_id": generation_id})
        return dispatched

    async def sync_from_provider(self, generation_id: UUID, user_id: Optional[UUID] = None) -> Generation:
        """Poll the provider for a generation and apply whatever it reports"""
        generation = await self.generation_service.get_generation(generation_id, user_id)
        if not generation.external_id:
            raise ValidationError("Generation has not been dispatched to the provider")

        prediction = await self.provider.get_prediction(generation.external_id)
        await ProviderWebhookService(
            self.session, generation_service=self.generation_service
        ).apply_event(prediction)
        return await self.generation_service.get_generation(generation_id)

    async def cancel_generation(
        self,
        generation_id: UUID,
        user_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> Generation:
        """Cancel locally, and ask the provider to stop a job it is running"""
        generation = await self.generation_service.get_generation(generation_id, user_id)
        external_id = generation.external_id
        was_running = generation.status == GenerationStatus.PROCESSING.value

        generation = await self.generation_service.cancel_generation(generation_id, user_id, reason)

        if external_id and was_running:
            await self._cancel_remote(generation_id, external_id)
        return generation

    async def _cancel_remote(self, generation_id: UUID, external_id: str) -> None:
        try:
            await self.provider.cancel_prediction(external_id)
        except ProviderError as e:
            # The local record is already settled; a late callback is ignored as stale
            logger.warning(
                f"Provider cancel for generation {generation_id} failed: {e.message}",
                extra={"generation_id": generation_id},
            )
