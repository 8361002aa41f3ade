import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from marketpulse.core.settings import Settings  # noqa: E402
from marketpulse.db.base import Base  # noqa: E402
import marketpulse.models  # noqa: E402,F401
from marketpulse.observability.rankings import RankingObservabilityStore  # noqa: E402
from marketpulse.services.market_metrics import build_service  # noqa: E402
from marketpulse.store.sqlalchemy import SQLAlchemyMetricStore  # noqa: E402

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class CountingStore:
    """Store proxy counting calls per method."""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.calls: dict[str, int] = {}

    def __getattr__(self, name):
        target = getattr(self._inner, name)
        if not callable(target):
            return target

        async def _wrapped(*args, **kwargs):
            self.calls[name] = self.calls.get(name, 0) + 1
            return await target(*args, **kwargs)

        return _wrapped


def make_settings(**overrides) -> Settings:
    values = {"tracing_enabled": False, "aggregation_scheduler_enabled": False, **overrides}
    return Settings(**values)


async def _create_factory(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _create_factory("sqlite+aiosqlite:///:memory:")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path: Path):
    engine, factory = await _create_factory(f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def observability() -> RankingObservabilityStore:
    return RankingObservabilityStore()


@pytest_asyncio.fixture
async def counting_store(session_factory) -> CountingStore:
    return CountingStore(SQLAlchemyMetricStore(session_factory))


@pytest_asyncio.fixture
async def service(counting_store, clock, observability):
    return build_service(make_settings(), store=counting_store, clock=clock, observability=observability)
