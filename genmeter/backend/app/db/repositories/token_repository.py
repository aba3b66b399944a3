from typing import Optional, List
from uuid import UUID
from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import LedgerEntryKind
from app.db.models.token import TokenTransaction, TokenPurchase
from app.db.repositories.base import BaseRepository


class TokenTransactionRepository(BaseRepository[TokenTransaction]):
    """Repository for ledger rows"""

    def __init__(self, session: AsyncSession):
        super().__init__(TokenTransaction, session)

    async def get_debit_for_generation(self, generation_id: UUID) -> Optional[TokenTransaction]:
        result = await self.session.execute(
            select(TokenTransaction)
            .where(TokenTransaction.generation_id == generation_id)
            .where(TokenTransaction.kind == LedgerEntryKind.DEBIT.value)
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: UUID, limit: int = 50) -> List[TokenTransaction]:
        result = await self.session.execute(
            select(TokenTransaction)
            .where(TokenTransaction.user_id == user_id)
            .order_by(TokenTransaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def net_balance(self, user_id: UUID) -> int:
        """Sum of credits and grants minus debits actually taken from the balance"""
        signed = case(
            (TokenTransaction.kind == LedgerEntryKind.DEBIT.value, -TokenTransaction.amount),
            else_=TokenTransaction.amount,
        )
        result = await self.session.execute(
            select(func.coalesce(func.sum(signed), 0)).where(TokenTransaction.user_id == user_id)
        )
        return int(result.scalar() or 0)


class TokenPurchaseRepository(BaseRepository[TokenPurchase]):
    """Repository for token purchases"""

    def __init__(self, session: AsyncSession):
        super().__init__(TokenPurchase, session)

    async def get_by_user(self, user_id: UUID, limit: int = 20) -> List[TokenPurchase]:
        result = await self.session.execute(
            select(TokenPurchase)
            .where(TokenPurchase.user_id == user_id)
            .order_by(TokenPurchase.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def compare_and_set_status(self, purchase_id: UUID, expected_status: str, values: dict) -> bool:
        result = await self.session.execute(
            update(TokenPurchase)
            .where(TokenPurchase.id == purchase_id)
            .where(TokenPurchase.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
