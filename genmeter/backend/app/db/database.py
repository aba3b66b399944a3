# backend/app/db/database.py
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from app.core.config import settings


def _engine_options(url: str) -> dict:
    options = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return options


# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://"),
    **_engine_options(settings.DATABASE_URL),
)

# Create async session factory
async_session_local = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency"""
    async with async_session_local() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one unit of work: commit when it finishes, roll back on
    any exception. Repositories only flush, so everything written inside the
    block lands together or not at all.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


async def init_db():
    """Initialize database (create tables)"""
    from app.db.base import Base

    async with engine.begin() as conn:
        # Import all models to ensure they're registered
        from app.db import models  # noqa: F401

        # Create tables
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections"""
    await engine.dispose()
