"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""

import hashlib
import hmac
import pytest
from typing import AsyncGenerator, Callable
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.database import get_db
from app.db import models  # noqa: F401
from app.db.models.user import User
from app.core.config import settings

# One in-memory database per test; StaticPool keeps every session on the same connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create clean database for each test"""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    """Factory for users with a given starting balance"""

    async def _make_user(
        email: str = "test@example.com",
        token_balance: int = 1,
        is_admin: bool = False,
    ) -> User:
        user = User(
            email=email,
            full_name="Test User",
            token_balance=token_balance,
            is_active=True,
            is_admin=is_admin,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
async def test_user(make_user) -> User:
    """User holding exactly one token"""
    return await make_user()


@pytest.fixture
async def admin_user(make_user) -> User:
    return await make_user(email="admin@example.com", token_balance=0, is_admin=True)


@pytest.fixture
def user_headers(test_user: User) -> dict:
    return {"X-User-ID": str(test_user.id)}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return {"X-User-ID": str(admin_user.id)}


@pytest.fixture
def webhook_secret(monkeypatch) -> str:
    monkeypatch.setattr(settings, "PROVIDER_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    return TEST_WEBHOOK_SECRET


@pytest.fixture
def sign() -> Callable[[bytes], str]:
    """Signature header value for a raw webhook body"""

    def _sign(payload: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
        digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    return _sign
