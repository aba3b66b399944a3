# backend/app/services/generation_service.py
"""
Generation lifecycle service.

Each mutating method runs as one unit of work: the status write, the ledger
settlement and the usage event commit together or not at all. Status writes
are compare-and-set on the status that was read, so two concurrent updates of
the same record serialize instead of both applying.
"""
from typing import Optional, Dict, Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    ADMIN_GENERATIONS_PAGE_SIZE,
    AI_MODELS,
    MAX_PAGE_SIZE,
    PENDING_QUEUE_BATCH_SIZE,
    USER_GENERATIONS_PAGE_SIZE,
    GenerationStatus,
    UsageAction,
)
from app.core.exceptions import (
    ConcurrentUpdateError,
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.lifecycle import ensure_transition
from app.core.logging import logger
from app.db.base import utcnow
from app.db.database import transaction
from app.db.models.generation import Generation
from app.db.repositories.generation_repository import GenerationRepository
from app.services.retry_policy import RetryPolicy
from app.services.token_ledger import TokenLedger
from app.services.usage_service import UsageService


def model_token_cost(model: Optional[str]) -> int:
    """Declared cost of one generation with ``model``"""
    entry = AI_MODELS.get(model or "")
    if entry:
        return int(entry["cost"])
    return settings.GENERATION_TOKEN_COST


def _check_limit(limit: int, skip: int = 0) -> int:
    if limit < 1 or skip < 0:
        raise ValidationError("limit must be positive and offset must not be negative")
    return min(limit, MAX_PAGE_SIZE)


class GenerationService:
    """Creates generations and moves them through their lifecycle"""

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        session: AsyncSession,
        usage: Optional[UsageService] = None,
        ledger: Optional[TokenLedger] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.session = session
        self.generations = GenerationRepository(session)
        self.usage = usage or UsageService(session)
        self.ledger = ledger or TokenLedger(session, usage=self.usage)
        self.retry_policy = retry_policy or RetryPolicy()

    async def create_generation(
        self,
        user_id: UUID,
        product_image_ref: str,
        prompt: str,
        parameters: Optional[Dict[str, Any]] = None,
        model_image_ref: Optional[str] = None,
    ) -> Generation:
        """
        Insert a pending generation after checking the owner can pay for it.

        Nothing is charged here; the debit happens when the job completes.
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required")
        if not product_image_ref or not product_image_ref.strip():
            raise ValidationError("Product image is required")

        parameters = {k: v for k, v in (parameters or {}).items() if v is not None}
        if not parameters.get("model"):
            raise ValidationError("parameters.model is required")
        cost = model_token_cost(parameters["model"])

        async with transaction(self.session):
            user = await self.ledger.get_user(user_id)
            self.ledger.validate_balance(user, cost)

            generation = await self.generations.create({
                "user_id": user_id,
                "status": GenerationStatus.PENDING.value,
                "product_image_ref": product_image_ref,
                "model_image_ref": model_image_ref,
                "prompt": prompt,
                "parameters": parameters,
                "token_cost": cost,
                "tokens_used": 0,
                "retry_count": 0,
            })

            await self.usage.log_event(
                user_id,
                UsageAction.GENERATION_STARTED,
                {"generation_id": str(generation.id), "model": parameters["model"], "token_cost": cost},
            )

        logger.info(
            f"Created generation {generation.id} for user {user_id}",
            extra={"user_id": user_id, "generation_id": generation.id},
        )
        return generation

    async def update_generation_status(
        self,
        generation_id: UUID,
        new_status: GenerationStatus,
        result_ref: Optional[str] = None,
        error: Optional[str] = None,
        external_id: Optional[str] = None,
        metrics: Optional[Dict[str, Any]] = None,
    ) -> Generation:
        """
        Move a generation to ``new_status`` and settle it.

        Requesting the status the record already has is a no-op, which makes
        replayed provider callbacks harmless. ``pending`` can only be reached
        through retry_generation.
        """
        try:
            new_status = GenerationStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown generation status: {new_status}")

        async with transaction(self.session):
            for _ in range(self.MAX_ATTEMPTS):
                generation = await self.generations.refresh_by_id(generation_id)
                if not generation:
                    raise NotFoundError("Generation not found")

                current = GenerationStatus(generation.status)
                if current == new_status:
                    logger.info(
                        f"Generation {generation_id} already {current.value}",
                        extra={"generation_id": generation_id},
                    )
                    return generation

                if new_status == GenerationStatus.PENDING:
                    raise InvalidStatusTransitionError(current.value, new_status.value)
                ensure_transition(current, new_status)

                values = self._status_values(generation, new_status, result_ref, error, external_id)
                if not await self.generations.compare_and_set_status(generation_id, current, values):
                    logger.warning(
                        f"Generation {generation_id} changed while updating, re-reading",
                        extra={"generation_id": generation_id},
                    )
                    continue

                if new_status == GenerationStatus.COMPLETED:
                    settled = await self.ledger.debit(
                        generation.user_id,
                        generation.token_cost,
                        generation_id=generation.id,
                        reason=f"Generation {generation.id}",
                    )
                    await self.generations.update(generation_id, {"tokens_used": settled.recorded})

                generation = await self.generations.refresh_by_id(generation_id)
                await self._log_transition(generation, metrics)
                break
            else:
                raise ConcurrentUpdateError()

        logger.info(
            f"Generation {generation_id} {current.value} -> {new_status.value}",
            extra={"generation_id": generation_id, "user_id": generation.user_id},
        )
        return generation

    def _status_values(
        self,
        generation: Generation,
        new_status: GenerationStatus,
        result_ref: Optional[str],
        error: Optional[str],
        external_id: Optional[str],
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {"status": new_status.value}
        now = utcnow()

        if new_status in (GenerationStatus.COMPLETED, GenerationStatus.FAILED):
            values["completed_at"] = now
            values["processing_time_ms"] = max(
                0, int((now - generation.created_at).total_seconds() * 1000)
            )
        elif new_status == GenerationStatus.CANCELLED:
            values["completed_at"] = now

        if new_status == GenerationStatus.FAILED:
            values["tokens_used"] = 0

        if result_ref is not None:
            values["result_ref"] = result_ref
        if error is not None:
            values["error"] = error
        if external_id is not None:
            values["external_id"] = external_id
        return values

    async def _log_transition(self, generation: Generation, metrics: Optional[Dict[str, Any]]):
        metadata: Dict[str, Any] = {"generation_id": str(generation.id), "model": generation.model}
        metadata.update(metrics or {})

        if generation.status == GenerationStatus.COMPLETED.value:
            metadata.update(
                tokens_used=generation.tokens_used,
                processing_time_ms=generation.processing_time_ms,
            )
            await self.usage.log_event(generation.user_id, UsageAction.GENERATION_COMPLETED, metadata)
        elif generation.status == GenerationStatus.FAILED.value:
            metadata.update(
                error_message=generation.error,
                processing_time_ms=generation.processing_time_ms,
            )
            await self.usage.log_event(generation.user_id, UsageAction.GENERATION_FAILED, metadata)
        elif generation.status == GenerationStatus.CANCELLED.value:
            metadata.update(error_message=generation.error or "Cancelled", cancelled=True)
            await self.usage.log_event(generation.user_id, UsageAction.GENERATION_FAILED, metadata)

    async def retry_generation(self, generation_id: UUID, user_id: Optional[UUID] = None) -> Generation:
        """Send a failed generation back to pending and log a fresh start"""
        async with transaction(self.session):
            generation = await self._get_owned(generation_id, user_id)
            self.retry_policy.check(generation)

            if self.retry_policy.requires_balance:
                owner = await self.ledger.get_user(generation.user_id)
                self.ledger.validate_balance(owner, generation.token_cost)

            values = self.retry_policy.reset_values(generation)
            if not await self.generations.compare_and_set_status(
                generation_id, GenerationStatus.FAILED, values
            ):
                raise ConcurrentUpdateError()

            generation = await self.generations.refresh_by_id(generation_id)
            await self.usage.log_event(
                generation.user_id,
                UsageAction.GENERATION_STARTED,
                {
                    "generation_id": str(generation.id),
                    "model": generation.model,
                    "retry_count": generation.retry_count,
                },
            )

        logger.info(
            f"Retrying generation {generation_id} (attempt {generation.retry_count})",
            extra={"generation_id": generation_id, "user_id": generation.user_id},
        )
        return generation

    async def cancel_generation(
        self,
        generation_id: UUID,
        user_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> Generation:
        await self._get_owned(generation_id, user_id)
        return await self.update_generation_status(
            generation_id,
            GenerationStatus.CANCELLED,
            error=reason or "Cancelled by user",
        )

    async def delete_generation(self, generation_id: UUID, user_id: Optional[UUID] = None) -> None:
        """Remove a generation; the ledger is not touched"""
        async with transaction(self.session):
            await self._get_owned(generation_id, user_id)
            await self.generations.delete(generation_id)
        logger.info(f"Deleted generation {generation_id}", extra={"generation_id": generation_id})

    async def _get_owned(self, generation_id: UUID, user_id: Optional[UUID]) -> Generation:
        generation = await self.generations.refresh_by_id(generation_id)
        if not generation:
            raise NotFoundError("Generation not found")
        if user_id is not None and generation.user_id != user_id:
            raise ForbiddenError("Generation belongs to another user")
        return generation

    async def get_generation(self, generation_id: UUID, user_id: Optional[UUID] = None) -> Generation:
        return await self._get_owned(generation_id, user_id)

    async def list_user_generations(
        self,
        user_id: UUID,
        status: Optional[GenerationStatus] = None,
        limit: int = USER_GENERATIONS_PAGE_SIZE,
        skip: int = 0,
    ) -> List[Generation]:
        limit = _check_limit(limit, skip)
        return await self.generations.get_by_user(user_id, status=status, skip=skip, limit=limit)

    async def list_recent_generations(
        self,
        status: Optional[GenerationStatus] = None,
        limit: int = ADMIN_GENERATIONS_PAGE_SIZE,
        skip: int = 0,
    ) -> List[Generation]:
        limit = _check_limit(limit, skip)
        return await self.generations.get_recent(status=status, skip=skip, limit=limit)

    async def get_status_summary(self, user_id: UUID) -> Dict[str, int]:
        return await self.generations.count_by_status(user_id)

    async def get_pending_generations(self, limit: int = PENDING_QUEUE_BATCH_SIZE) -> List[Generation]:
        """Oldest pending jobs first; retried jobs queue with everything else"""
        return await self.generations.get_pending(limit=_check_limit(limit))
