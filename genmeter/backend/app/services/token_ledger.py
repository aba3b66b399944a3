# backend/app/services/token_ledger.py
"""
Token ledger: every change to a user's balance goes through here.

Balance writes are compare-and-set on the balance the caller observed, so two
concurrent settlements can never both spend the same tokens. Each change also
appends a TokenTransaction row; the unique (generation_id, kind) pair on that
table is what stops a generation from being debited twice.

Nothing in this module commits. Callers wrap ledger calls in
``app.db.database.transaction`` together with the record they settle.
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import DebitPolicy, LedgerEntryKind, UsageAction
from app.core.exceptions import (
    ConcurrentUpdateError,
    InsufficientTokensError,
    NotFoundError,
    ValidationError,
)
from app.core.logging import logger
from app.db.models.user import User
from app.db.repositories.token_repository import TokenTransactionRepository
from app.db.repositories.user_repository import UserRepository
from app.services.usage_service import UsageService


@dataclass
class DebitResult:
    charged: int
    recorded: int
    balance_after: int
    replayed: bool = False


class TokenLedger:
    """Balance checks, debits, credits and free grants for one session"""

    MAX_ATTEMPTS = 5

    def __init__(
        self,
        session: AsyncSession,
        usage: Optional[UsageService] = None,
        debit_policy: Optional[DebitPolicy] = None,
    ):
        self.session = session
        self.users = UserRepository(session)
        self.transactions = TokenTransactionRepository(session)
        self.usage = usage or UsageService(session)
        self.debit_policy = DebitPolicy(debit_policy or settings.DEBIT_POLICY)

    async def get_user(self, user_id: UUID) -> User:
        user = await self.users.refresh_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def validate_balance(self, user: User, cost: int) -> None:
        """Raise InsufficientTokensError unless the user can cover ``cost``"""
        if user.token_balance < cost:
            raise InsufficientTokensError(required=cost, available=user.token_balance)

    async def debit(
        self,
        user_id: UUID,
        amount: int,
        generation_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> DebitResult:
        """
        Take ``amount`` tokens off the balance, never below zero.

        The balance is reduced by ``min(balance, amount)``. What gets recorded
        as used depends on the debit policy: NOMINAL records ``amount``,
        AVAILABLE records only what was actually charged.

        When ``generation_id`` already has a debit row, that row is returned
        and nothing changes.
        """
        if amount < 0:
            raise ValidationError("Debit amount must not be negative")

        if generation_id is not None:
            existing = await self.transactions.get_debit_for_generation(generation_id)
            if existing:
                logger.info(
                    f"Debit for generation {generation_id} already recorded",
                    extra={"generation_id": generation_id},
                )
                return DebitResult(
                    charged=existing.amount,
                    recorded=existing.recorded_amount,
                    balance_after=existing.balance_after,
                    replayed=True,
                )

        for _ in range(self.MAX_ATTEMPTS):
            user = await self.get_user(user_id)
            balance = user.token_balance
            charged = min(balance, amount)
            recorded = amount if self.debit_policy == DebitPolicy.NOMINAL else charged

            applied = await self.users.compare_and_set_balance(
                user_id,
                expected_balance=balance,
                values={
                    "token_balance": balance - charged,
                    "total_tokens_used": User.total_tokens_used + recorded,
                },
            )
            if not applied:
                continue

            await self.transactions.create({
                "user_id": user_id,
                "kind": LedgerEntryKind.DEBIT.value,
                "amount": charged,
                "recorded_amount": recorded,
                "balance_after": balance - charged,
                "generation_id": generation_id,
                "reason": reason,
            })

            if charged < amount:
                logger.warning(
                    f"Balance covered {charged} of {amount} tokens for user {user_id}",
                    extra={"user_id": user_id, "generation_id": generation_id},
                )

            return DebitResult(charged=charged, recorded=recorded, balance_after=balance - charged)

        raise ConcurrentUpdateError("Token balance changed concurrently, please retry")

    async def _add(
        self,
        user_id: UUID,
        amount: int,
        kind: LedgerEntryKind,
        counters: Dict[str, Any],
        purchase_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> User:
        if amount <= 0:
            raise ValidationError("Token amount must be positive")

        await self.get_user(user_id)
        values = {"token_balance": User.token_balance + amount}
        values.update(counters)
        await self.users.update(user_id, values)
        user = await self.get_user(user_id)

        await self.transactions.create({
            "user_id": user_id,
            "kind": kind.value,
            "amount": amount,
            "recorded_amount": 0,
            "balance_after": user.token_balance,
            "purchase_id": purchase_id,
            "reason": reason,
        })
        return user

    async def credit(
        self,
        user_id: UUID,
        amount: int,
        purchase_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> User:
        """Add purchased tokens to the balance"""
        user = await self._add(
            user_id,
            amount,
            LedgerEntryKind.CREDIT,
            {"total_tokens_purchased": User.total_tokens_purchased + amount},
            purchase_id=purchase_id,
            reason=reason,
        )
        logger.info(f"Credited {amount} tokens to user {user_id}", extra={"user_id": user_id})
        return user

    async def grant_free_tokens(self, user_id: UUID, amount: int, reason: str) -> User:
        """Add free tokens and log a tokens_purchased event for them"""
        user = await self._add(
            user_id,
            amount,
            LedgerEntryKind.GRANT,
            {"free_tokens_granted": User.free_tokens_granted + amount},
            reason=reason,
        )
        await self.usage.log_event(
            user_id,
            UsageAction.TOKENS_PURCHASED,
            {"tokens_received": amount, "reason": reason, "free": True},
        )
        logger.info(f"Granted {amount} free tokens to user {user_id}: {reason}", extra={"user_id": user_id})
        return user

    async def reconcile(self, user_id: UUID) -> Dict[str, Any]:
        """Compare the stored balance with the sum of the ledger rows"""
        user = await self.get_user(user_id)
        ledger_balance = await self.transactions.net_balance(user_id)
        consistent = ledger_balance == user.token_balance
        if not consistent:
            logger.warning(
                f"Ledger mismatch for user {user_id}: balance={user.token_balance} ledger={ledger_balance}",
                extra={"user_id": user_id},
            )
        return {
            "user_id": user_id,
            "token_balance": user.token_balance,
            "ledger_balance": ledger_balance,
            "consistent": consistent,
        }
