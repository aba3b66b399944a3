"""Generation lifecycle: creation, settlement, retries, cancellation"""
import pytest
from uuid import uuid4
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import GenerationStatus, UsageAction
from app.core.exceptions import (
    ForbiddenError,
    InsufficientTokensError,
    InvalidStatusTransitionError,
    MaxRetriesExceededError,
    NotFoundError,
    ValidationError,
)
from app.db.database import transaction
from app.db.models.usage import UsageEvent
from app.db.repositories.user_repository import UserRepository
from app.services.generation_service import GenerationService, model_token_cost
from app.services.retry_policy import RetryPolicy
from app.services.token_ledger import TokenLedger


PRODUCT = "products/sneaker.png"
PROMPT = "Model wearing the sneaker on a rooftop"


async def _events(db_session: AsyncSession, user_id, action: UsageAction):
    result = await db_session.execute(
        select(UsageEvent)
        .where(UsageEvent.user_id == user_id)
        .where(UsageEvent.action == action.value)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestCreateGeneration:

    async def test_creates_pending_record_and_logs_start(self, db_session, test_user):
        user_id = test_user.id
        service = GenerationService(db_session)

        generation = await service.create_generation(
            user_id, PRODUCT, PROMPT, {"model": "flux-dev", "aspect_ratio": "1:1", "seed": None}
        )

        assert generation.status == GenerationStatus.PENDING.value
        assert generation.tokens_used == 0
        assert generation.retry_count == 0
        assert generation.token_cost == 1
        assert generation.parameters == {"model": "flux-dev", "aspect_ratio": "1:1"}

        started = await _events(db_session, user_id, UsageAction.GENERATION_STARTED)
        assert len(started) == 1
        assert started[0].event_metadata["generation_id"] == str(generation.id)
        assert started[0].event_metadata["model"] == "flux-dev"

    async def test_creation_does_not_charge(self, db_session, test_user):
        user_id = test_user.id
        await GenerationService(db_session).create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})

        user = await TokenLedger(db_session).get_user(user_id)
        assert user.token_balance == 1
        assert user.total_tokens_used == 0

    async def test_zero_balance_rejected(self, db_session, make_user):
        user = await make_user(token_balance=0)
        user_id = user.id

        with pytest.raises(InsufficientTokensError):
            await GenerationService(db_session).create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})

        assert await _events(db_session, user_id, UsageAction.GENERATION_STARTED) == []

    async def test_model_cost_checked_against_balance(self, db_session, test_user):
        assert model_token_cost("stable-diffusion-3") == 2

        with pytest.raises(InsufficientTokensError) as exc_info:
            await GenerationService(db_session).create_generation(
                test_user.id, PRODUCT, PROMPT, {"model": "stable-diffusion-3"}
            )
        assert exc_info.value.required == 2

    async def test_unknown_model_uses_default_cost(self):
        assert model_token_cost("some-custom-model") == 1

    @pytest.mark.parametrize("prompt,product,parameters", [
        ("", PRODUCT, {"model": "flux-dev"}),
        ("   ", PRODUCT, {"model": "flux-dev"}),
        (PROMPT, "", {"model": "flux-dev"}),
        (PROMPT, PRODUCT, {}),
    ])
    async def test_invalid_input(self, db_session, test_user, prompt, product, parameters):
        with pytest.raises(ValidationError):
            await GenerationService(db_session).create_generation(test_user.id, product, prompt, parameters)

    async def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await GenerationService(db_session).create_generation(uuid4(), PRODUCT, PROMPT, {"model": "flux-dev"})


@pytest.mark.asyncio
class TestStatusUpdates:

    @pytest.fixture
    def service(self, db_session):
        return GenerationService(db_session)

    @pytest.fixture
    async def generation(self, service, test_user):
        return await service.create_generation(test_user.id, PRODUCT, PROMPT, {"model": "flux-dev"})

    async def test_completion_settles_tokens(self, db_session, service, generation, test_user):
        """Balance 1, cost 1: completing leaves 0 and records 1 used"""
        user_id, generation_id = test_user.id, generation.id

        generation = await service.update_generation_status(
            generation_id, GenerationStatus.COMPLETED, result_ref="results/out.png"
        )

        assert generation.status == GenerationStatus.COMPLETED.value
        assert generation.tokens_used == 1
        assert generation.result_ref == "results/out.png"
        assert generation.completed_at is not None
        assert generation.processing_time_ms >= 0

        user = await TokenLedger(db_session).get_user(user_id)
        assert user.token_balance == 0
        assert user.total_tokens_used == 1

        completed = await _events(db_session, user_id, UsageAction.GENERATION_COMPLETED)
        assert len(completed) == 1
        assert completed[0].event_metadata["tokens_used"] == 1
        assert completed[0].event_metadata["processing_time_ms"] == generation.processing_time_ms

    async def test_failure_does_not_charge(self, db_session, service, generation, test_user):
        user_id, generation_id = test_user.id, generation.id

        await service.update_generation_status(generation_id, GenerationStatus.PROCESSING)
        generation = await service.update_generation_status(
            generation_id, GenerationStatus.FAILED, error="NSFW content detected"
        )

        assert generation.status == GenerationStatus.FAILED.value
        assert generation.tokens_used == 0
        assert generation.error == "NSFW content detected"
        assert generation.completed_at is not None

        user = await TokenLedger(db_session).get_user(user_id)
        assert user.token_balance == 1
        assert user.total_tokens_used == 0

        failed = await _events(db_session, user_id, UsageAction.GENERATION_FAILED)
        assert len(failed) == 1
        assert failed[0].event_metadata["error_message"] == "NSFW content detected"

    async def test_processing_emits_no_event(self, db_session, service, generation, test_user):
        user_id = test_user.id
        generation = await service.update_generation_status(
            generation.id, GenerationStatus.PROCESSING, external_id="pred_123"
        )

        assert generation.status == GenerationStatus.PROCESSING.value
        assert generation.external_id == "pred_123"
        assert generation.completed_at is None
        assert await _events(db_session, user_id, UsageAction.GENERATION_COMPLETED) == []
        assert await _events(db_session, user_id, UsageAction.GENERATION_FAILED) == []

    async def test_repeated_completion_is_a_no_op(self, db_session, service, generation, test_user):
        user_id, generation_id = test_user.id, generation.id

        first = await service.update_generation_status(generation_id, GenerationStatus.COMPLETED)
        completed_at = first.completed_at
        second = await service.update_generation_status(generation_id, GenerationStatus.COMPLETED)

        assert second.status == GenerationStatus.COMPLETED.value
        assert second.tokens_used == 1
        assert second.completed_at == completed_at

        user = await TokenLedger(db_session).get_user(user_id)
        assert user.token_balance == 0
        assert user.total_tokens_used == 1
        assert len(await _events(db_session, user_id, UsageAction.GENERATION_COMPLETED)) == 1

    @pytest.mark.parametrize("first,second", [
        (GenerationStatus.COMPLETED, GenerationStatus.PROCESSING),
        (GenerationStatus.COMPLETED, GenerationStatus.FAILED),
        (GenerationStatus.CANCELLED, GenerationStatus.COMPLETED),
        (GenerationStatus.FAILED, GenerationStatus.COMPLETED),
    ])
    async def test_invalid_transition_rejected(self, service, generation, first, second):
        generation_id = generation.id
        await service.update_generation_status(generation_id, first)

        with pytest.raises(InvalidStatusTransitionError):
            await service.update_generation_status(generation_id, second)

        generation = await service.get_generation(generation_id)
        assert generation.status == first.value

    async def test_pending_only_reachable_through_retry(self, service, generation):
        generation_id = generation.id
        await service.update_generation_status(generation_id, GenerationStatus.FAILED)

        with pytest.raises(InvalidStatusTransitionError):
            await service.update_generation_status(generation_id, GenerationStatus.PENDING)

    async def test_unknown_status_rejected(self, service, generation):
        with pytest.raises(ValidationError):
            await service.update_generation_status(generation.id, "exploded")

    async def test_unknown_generation(self, service):
        with pytest.raises(NotFoundError):
            await service.update_generation_status(uuid4(), GenerationStatus.COMPLETED)

    async def test_tokens_used_positive_only_when_completed(self, service, make_user):
        user = await make_user(email="many@example.com", token_balance=5)
        user_id = user.id
        outcomes = [
            GenerationStatus.COMPLETED,
            GenerationStatus.FAILED,
            GenerationStatus.CANCELLED,
            GenerationStatus.PROCESSING,
        ]
        ids = []
        for outcome in outcomes:
            generation = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
            ids.append(generation.id)
            await service.update_generation_status(generation.id, outcome)

        for generation_id in ids:
            generation = await service.get_generation(generation_id)
            assert (generation.tokens_used > 0) == (generation.status == GenerationStatus.COMPLETED.value)


@pytest.mark.asyncio
class TestRetries:

    @pytest.fixture
    def service(self, db_session):
        return GenerationService(db_session)

    @pytest.fixture
    async def failed_generation(self, service, test_user):
        generation = await service.create_generation(test_user.id, PRODUCT, PROMPT, {"model": "flux-dev"})
        return await service.update_generation_status(generation.id, GenerationStatus.FAILED, error="timeout")

    async def test_retry_resets_to_pending(self, db_session, service, failed_generation, test_user):
        user_id = test_user.id

        generation = await service.retry_generation(failed_generation.id)

        assert generation.status == GenerationStatus.PENDING.value
        assert generation.retry_count == 1
        assert generation.error is None
        assert generation.completed_at is None
        assert generation.processing_time_ms is None
        assert len(await _events(db_session, user_id, UsageAction.GENERATION_STARTED)) == 2

    async def test_retry_capped_at_three(self, service, failed_generation):
        """Three retries succeed, the fourth is refused and the count stays at 3"""
        generation_id = failed_generation.id

        for attempt in range(1, 4):
            generation = await service.retry_generation(generation_id)
            assert generation.retry_count == attempt
            await service.update_generation_status(generation_id, GenerationStatus.FAILED, error="timeout")

        with pytest.raises(MaxRetriesExceededError):
            await service.retry_generation(generation_id)

        generation = await service.get_generation(generation_id)
        assert generation.retry_count == 3
        assert generation.status == GenerationStatus.FAILED.value

    @pytest.mark.parametrize("status", [
        GenerationStatus.PROCESSING,
        GenerationStatus.COMPLETED,
        GenerationStatus.CANCELLED,
    ])
    async def test_retry_requires_failed_status(self, service, test_user, status):
        generation = await service.create_generation(test_user.id, PRODUCT, PROMPT, {"model": "flux-dev"})
        generation_id = generation.id
        await service.update_generation_status(generation_id, status)

        with pytest.raises(InvalidStatusTransitionError):
            await service.retry_generation(generation_id)

    async def test_retry_of_pending_rejected(self, service, test_user):
        generation = await service.create_generation(test_user.id, PRODUCT, PROMPT, {"model": "flux-dev"})

        with pytest.raises(InvalidStatusTransitionError):
            await service.retry_generation(generation.id)

    async def test_retry_skips_balance_check_by_default(self, db_session, service, failed_generation, test_user):
        user_id, generation_id = test_user.id, failed_generation.id
        ledger = TokenLedger(db_session)
        async with transaction(db_session):
            await ledger.debit(user_id, 1)

        generation = await service.retry_generation(generation_id)
        assert generation.status == GenerationStatus.PENDING.value

    async def test_retry_balance_check_when_enabled(self, db_session, make_user):
        user = await make_user(email="broke@example.com", token_balance=1)
        user_id = user.id
        service = GenerationService(db_session, retry_policy=RetryPolicy(requires_balance=True))
        generation = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
        generation_id = generation.id
        await service.update_generation_status(generation_id, GenerationStatus.FAILED)

        await UserRepository(db_session).update(user_id, {"token_balance": 0})
        await db_session.commit()

        with pytest.raises(InsufficientTokensError):
            await service.retry_generation(generation_id)

    async def test_retry_checks_owner(self, service, failed_generation):
        with pytest.raises(ForbiddenError):
            await service.retry_generation(failed_generation.id, user_id=uuid4())


@pytest.mark.asyncio
class TestCancelDeleteAndReads:

    @pytest.fixture
    def service(self, db_session):
        return GenerationService(db_session)

    async def test_cancel(self, db_session, service, test_user):
        user_id = test_user.id
        generation = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})

        generation = await service.cancel_generation(generation.id, user_id)

        assert generation.status == GenerationStatus.CANCELLED.value
        assert generation.error == "Cancelled by user"
        assert generation.completed_at is not None
        assert generation.processing_time_ms is None
        assert generation.tokens_used == 0
        assert (await TokenLedger(db_session).get_user(user_id)).token_balance == 1

        failed = await _events(db_session, user_id, UsageAction.GENERATION_FAILED)
        assert failed[0].event_metadata["cancelled"] is True

    async def test_cancel_other_users_generation(self, service, test_user):
        generation = await service.create_generation(test_user.id, PRODUCT, PROMPT, {"model": "flux-dev"})

        with pytest.raises(ForbiddenError):
            await service.cancel_generation(generation.id, uuid4())

    async def test_delete_leaves_ledger_alone(self, db_session, service, make_user):
        user = await make_user(email="deleter@example.com", token_balance=2)
        user_id = user.id
        generation = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
        generation_id = generation.id
        await service.update_generation_status(generation_id, GenerationStatus.COMPLETED)

        await service.delete_generation(generation_id, user_id)

        with pytest.raises(NotFoundError):
            await service.get_generation(generation_id)
        user = await TokenLedger(db_session).get_user(user_id)
        assert user.token_balance == 1
        assert user.total_tokens_used == 1

    async def test_delete_unknown(self, service):
        with pytest.raises(NotFoundError):
            await service.delete_generation(uuid4())

    async def test_get_checks_owner(self, service, test_user):
        generation = await service.create_generation(test_user.id, PRODUCT, PROMPT, {"model": "flux-dev"})

        with pytest.raises(ForbiddenError):
            await service.get_generation(generation.id, uuid4())

    async def test_listing_newest_first_with_filter(self, service, make_user):
        user = await make_user(email="lister@example.com", token_balance=5)
        user_id = user.id
        ids = []
        for _ in range(3):
            generation = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
            ids.append(generation.id)
        await service.update_generation_status(ids[0], GenerationStatus.FAILED)

        listed = await service.list_user_generations(user_id)
        assert [g.id for g in listed] == list(reversed(ids))

        failed = await service.list_user_generations(user_id, status=GenerationStatus.FAILED)
        assert [g.id for g in failed] == [ids[0]]

        assert len(await service.list_user_generations(user_id, limit=2)) == 2

    async def test_listing_rejects_bad_limit(self, service, test_user):
        with pytest.raises(ValidationError):
            await service.list_user_generations(test_user.id, limit=0)

    async def test_recent_generations_span_users(self, service, make_user):
        first = await make_user(email="a@example.com", token_balance=1)
        second = await make_user(email="b@example.com", token_balance=1)
        await service.create_generation(first.id, PRODUCT, PROMPT, {"model": "flux-dev"})
        await service.create_generation(second.id, PRODUCT, PROMPT, {"model": "flux-dev"})

        recent = await service.list_recent_generations()
        assert {g.user_id for g in recent} == {first.id, second.id}

    async def test_status_summary_has_all_states(self, service, make_user):
        user = await make_user(email="summary@example.com", token_balance=3)
        user_id = user.id
        first = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
        await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
        await service.update_generation_status(first.id, GenerationStatus.PROCESSING)

        summary = await service.get_status_summary(user_id)

        assert summary == {
            "pending": 1,
            "processing": 1,
            "completed": 0,
            "failed": 0,
            "cancelled": 0,
        }

    async def test_pending_queue_oldest_first(self, service, make_user):
        user = await make_user(email="queue@example.com", token_balance=3)
        user_id = user.id
        ids = []
        for _ in range(3):
            generation = await service.create_generation(user_id, PRODUCT, PROMPT, {"model": "flux-dev"})
            ids.append(generation.id)
        await service.update_generation_status(ids[1], GenerationStatus.PROCESSING)

        pending = await service.get_pending_generations()
        assert [g.id for g in pending] == [ids[0], ids[2]]
