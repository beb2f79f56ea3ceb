"""Database connection and session management."""

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from malrec.config import Settings

# Base class for models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine. SQL echo stays off, it floods the logs."""
    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=False,
        pool_pre_ping=True,  # Verify connections before use to avoid stale connections
        pool_recycle=300,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine):
    """Create tables that do not exist yet. Migrations live in alembic/."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting database sessions."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
