"""Token ledger: balance checks, clamped debits, credits and grants"""
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import DebitPolicy, LedgerEntryKind, UsageAction
from app.core.exceptions import InsufficientTokensError, NotFoundError, ValidationError
from app.db.database import transaction
from app.db.models.token import TokenTransaction
from app.db.models.usage import UsageEvent
from app.services.generation_service import GenerationService
from app.services.token_ledger import TokenLedger
from app.services.user_service import UserService


async def _ledger_rows(db_session: AsyncSession, user_id):
    result = await db_session.execute(
        select(TokenTransaction).where(TokenTransaction.user_id == user_id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestTokenLedger:

    # ==================== Balance validation ====================

    async def test_validate_balance_passes_when_covered(self, db_session, make_user):
        user = await make_user(token_balance=2)
        TokenLedger(db_session).validate_balance(user, 2)

    async def test_validate_balance_raises_when_short(self, db_session, make_user):
        user = await make_user(token_balance=1)

        with pytest.raises(InsufficientTokensError) as exc_info:
            TokenLedger(db_session).validate_balance(user, 2)

        assert exc_info.value.required == 2
        assert exc_info.value.available == 1
        assert exc_info.value.status_code == 402

    async def test_unknown_user(self, db_session):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await TokenLedger(db_session).get_user(uuid4())

    # ==================== Debits ====================

    async def test_debit_reduces_balance_and_records_usage(self, db_session, make_user):
        user = await make_user(token_balance=5)
        user_id = user.id
        ledger = TokenLedger(db_session)

        async with transaction(db_session):
            result = await ledger.debit(user_id, 2, reason="test")

        user = await ledger.get_user(user_id)
        assert result.charged == 2
        assert result.recorded == 2
        assert result.balance_after == 3
        assert user.token_balance == 3
        assert user.total_tokens_used == 2

        rows = await _ledger_rows(db_session, user_id)
        assert [(r.kind, r.amount, r.balance_after) for r in rows] == [("debit", 2, 3)]

    async def test_debit_clamps_at_zero_and_records_nominal_cost(self, db_session, make_user):
        """Default policy: balance floors at 0, usage counts the full cost"""
        user = await make_user(token_balance=1)
        user_id = user.id
        ledger = TokenLedger(db_session, debit_policy=DebitPolicy.NOMINAL)

        async with transaction(db_session):
            result = await ledger.debit(user_id, 3)

        user = await ledger.get_user(user_id)
        assert result.charged == 1
        assert result.recorded == 3
        assert user.token_balance == 0
        assert user.total_tokens_used == 3

    async def test_debit_available_policy_records_what_was_charged(self, db_session, make_user):
        user = await make_user(token_balance=1)
        user_id = user.id
        ledger = TokenLedger(db_session, debit_policy=DebitPolicy.AVAILABLE)

        async with transaction(db_session):
            result = await ledger.debit(user_id, 3)

        user = await ledger.get_user(user_id)
        assert result.charged == 1
        assert result.recorded == 1
        assert user.token_balance == 0
        assert user.total_tokens_used == 1

    async def test_debit_is_applied_once_per_generation(self, db_session, make_user):
        user = await make_user(token_balance=3)
        user_id = user.id
        generation = await GenerationService(db_session).create_generation(
            user_id, "products/shirt.png", "studio shot", {"model": "flux-dev"}
        )
        generation_id = generation.id
        ledger = TokenLedger(db_session)

        async with transaction(db_session):
            first = await ledger.debit(user_id, 1, generation_id=generation_id)
        async with transaction(db_session):
            second = await ledger.debit(user_id, 1, generation_id=generation_id)

        user = await ledger.get_user(user_id)
        assert not first.replayed
        assert second.replayed
        assert user.token_balance == 2
        assert user.total_tokens_used == 1
        assert len(await _ledger_rows(db_session, user_id)) == 1

    async def test_negative_debit_rejected(self, db_session, test_user):
        with pytest.raises(ValidationError):
            await TokenLedger(db_session).debit(test_user.id, -1)

    async def test_balance_never_negative(self, db_session, make_user):
        user = await make_user(token_balance=2)
        user_id = user.id
        ledger = TokenLedger(db_session)

        async with transaction(db_session):
            for amount in (1, 5, 2):
                await ledger.debit(user_id, amount)
                assert (await ledger.get_user(user_id)).token_balance >= 0
            await ledger.credit(user_id, 4)
            await ledger.debit(user_id, 10)

        assert (await ledger.get_user(user_id)).token_balance == 0

    # ==================== Credits and grants ====================

    async def test_credit_increases_balance_and_purchased_total(self, db_session, make_user):
        user = await make_user(token_balance=1)
        user_id = user.id
        ledger = TokenLedger(db_session)

        async with transaction(db_session):
            user = await ledger.credit(user_id, 10, reason="Starter pack")

        assert user.token_balance == 11
        assert user.total_tokens_purchased == 10
        rows = await _ledger_rows(db_session, user_id)
        assert rows[0].kind == LedgerEntryKind.CREDIT.value
        assert rows[0].balance_after == 11

    async def test_credit_must_be_positive(self, db_session, test_user):
        with pytest.raises(ValidationError):
            await TokenLedger(db_session).credit(test_user.id, 0)

    async def test_grant_free_tokens_logs_event(self, db_session, make_user):
        user = await make_user(token_balance=0)
        user_id = user.id

        async with transaction(db_session):
            user = await TokenLedger(db_session).grant_free_tokens(user_id, 5, "Promo")

        assert user.token_balance == 5
        assert user.free_tokens_granted == 5
        assert user.total_tokens_purchased == 0

        events = (await db_session.execute(
            select(UsageEvent).where(UsageEvent.user_id == user_id)
        )).scalars().all()
        assert [e.action for e in events] == [UsageAction.TOKENS_PURCHASED.value]
        assert events[0].event_metadata["tokens_received"] == 5
        assert events[0].event_metadata["reason"] == "Promo"

    # ==================== Reconciliation ====================

    async def test_reconcile_matches_after_grant_and_debit(self, db_session):
        user = await UserService(db_session).provision_user("ledger@example.com", signup_tokens=3)
        user_id = user.id
        ledger = TokenLedger(db_session)

        async with transaction(db_session):
            await ledger.debit(user_id, 2)

        report = await ledger.reconcile(user_id)
        assert report["token_balance"] == 1
        assert report["ledger_balance"] == 1
        assert report["consistent"] is True

    async def test_reconcile_flags_balance_written_outside_ledger(self, db_session, make_user):
        user = await make_user(token_balance=7)

        report = await TokenLedger(db_session).reconcile(user.id)

        assert report["ledger_balance"] == 0
        assert report["consistent"] is False
