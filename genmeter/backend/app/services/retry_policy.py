# backend/app/services/retry_policy.py
from dataclasses import dataclass, field
from typing import Dict, Any

from app.core.config import settings
from app.core.constants import GenerationStatus
from app.core.exceptions import InvalidStatusTransitionError, MaxRetriesExceededError
from app.db.models.generation import Generation


@dataclass
class RetryPolicy:
    """
    Rules for sending a failed generation back to the pending queue.

    A retried job re-enters the queue exactly like a fresh one; there is no
    priority for retries.
    """

    max_retries: int = field(default_factory=lambda: settings.MAX_GENERATION_RETRIES)
    requires_balance: bool = field(default_factory=lambda: settings.RETRY_REQUIRES_BALANCE)

    def check(self, generation: Generation) -> None:
        # A record at the cap is rejected whatever its status
        if generation.retry_count >= self.max_retries:
            raise MaxRetriesExceededError(
                f"Generation already retried {generation.retry_count} times",
                details={"retry_count": generation.retry_count, "max_retries": self.max_retries},
            )
        if generation.status != GenerationStatus.FAILED.value:
            raise InvalidStatusTransitionError(generation.status, GenerationStatus.PENDING.value)

    def reset_values(self, generation: Generation) -> Dict[str, Any]:
        """Column values for the retried record"""
        return {
            "status": GenerationStatus.PENDING.value,
            "retry_count": generation.retry_count + 1,
            "error": None,
            "result_ref": None,
            "external_id": None,
            "completed_at": None,
            "processing_time_ms": None,
            "tokens_used": 0,
        }
