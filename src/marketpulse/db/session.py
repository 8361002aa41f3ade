"""Async engine and session factory."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from marketpulse.core.settings import settings
from marketpulse.db.base import Base

engine: AsyncEngine = create_async_engine(settings.database_url, future=True)

async_session: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def create_schema(target: AsyncEngine | None = None) -> None:
    """Create all tables directly; local development only, deployments run Alembic."""

    import marketpulse.models  # noqa: F401

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
