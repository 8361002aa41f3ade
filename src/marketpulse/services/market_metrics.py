"""Service facade wiring recorder, aggregation, queries and rankings together."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.core.settings import Settings, get_settings
from marketpulse.domain import (
    BucketPeriod,
    CandidateEntity,
    EntityType,
    MarketplaceItemRecord,
    MetricBucket,
    MetricType,
    RankingPeriod,
    coerce_entity_type,
    coerce_metric_type,
)
from marketpulse.observability.rankings import RankingObservabilityStore
from marketpulse.services.cache import QueryCache
from marketpulse.services.curation import CurationRegistry
from marketpulse.services.metrics.aggregation import AggregationReport, DailyAggregationJob
from marketpulse.services.metrics.queries import MetricsQueryService
from marketpulse.services.metrics.recorder import EventRecorder
from marketpulse.services.rankings.engine import RankingEngine
from marketpulse.services.rankings.trending import TrendingCalculator
from marketpulse.store.base import MetricStore
from marketpulse.store.sqlalchemy import SQLAlchemyMetricStore

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class MarketMetricsService:
    """Single entry point used by the API, jobs and embedding applications."""

    store: MetricStore
    recorder: EventRecorder
    aggregation: DailyAggregationJob
    queries: MetricsQueryService
    rankings: RankingEngine
    trending: TrendingCalculator
    cache: QueryCache
    registry: CurationRegistry
    observability: RankingObservabilityStore
    clock: Clock = _utcnow

    async def record_event(
        self,
        metric_type: MetricType | str,
        subject_id: Any,
        actor_id: Any = None,
        value: Any = 1,
        metadata: Mapping[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> int:
        return await self.recorder.record(metric_type, subject_id, actor_id, value, metadata, occurred_at)

    async def get_metrics(
        self,
        metric_type: MetricType | str,
        period: BucketPeriod | str = BucketPeriod.DAILY,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> list[MetricBucket]:
        return await self.queries.get_metrics(metric_type, period, start_date, end_date)

    async def get_sales_metrics(
        self,
        period: BucketPeriod | str = BucketPeriod.DAILY,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> list[MetricBucket]:
        return await self.queries.get_sales_metrics(period, start_date, end_date)

    async def get_view_metrics(
        self,
        view_type: MetricType | str = MetricType.ARTWORK_VIEW,
        period: BucketPeriod | str = BucketPeriod.DAILY,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> list[MetricBucket]:
        return await self.queries.get_view_metrics(view_type, period, start_date, end_date)

    async def get_top_items(
        self,
        metric_type: MetricType | str,
        item_type: EntityType | str,
        limit: int = 10,
        lookback_days: int = 30,
    ) -> list[CandidateEntity]:
        return await self.queries.get_top_items(metric_type, item_type, limit, lookback_days)

    async def get_trending_items(
        self,
        item_type: EntityType | str,
        limit: int = 10,
        category: str | None = None,
        *,
        timeout: float | None = None,
    ) -> list[CandidateEntity]:
        return await self.trending.get_trending_items(item_type, limit, category, timeout=timeout)

    async def get_rankings(
        self,
        entity_type: EntityType | str,
        count: int = 10,
        category: str | None = None,
        period: RankingPeriod | str = RankingPeriod.THIRTY_DAYS,
        *,
        timeout: float | None = None,
    ) -> list[CandidateEntity]:
        return await self.rankings.get_rankings(entity_type, count, category, period, timeout=timeout)

    async def get_sales_leaderboard(
        self,
        count: int = 10,
        category: str | None = None,
        period: RankingPeriod | str = RankingPeriod.THIRTY_DAYS,
        *,
        timeout: float | None = None,
    ) -> list[CandidateEntity]:
        return await self.rankings.get_sales_leaderboard(count, category, period, timeout=timeout)

    async def run_daily_aggregation(self, metric_date: date | None = None) -> AggregationReport:
        """Aggregate ``metric_date`` (yesterday in UTC by default)."""

        target = metric_date or (self.clock().date() - timedelta(days=1))
        return await self.aggregation.run(target)

    async def upsert_item(
        self,
        item_id: Any,
        item_type: EntityType | str,
        *,
        artist_id: Any = None,
        curator_id: Any = None,
        category: str | None = None,
        published: bool = True,
        annotations: Mapping[str, float] | None = None,
    ) -> MarketplaceItemRecord:
        """Register or replace catalogue reference data used by the rankings."""

        identifier = str(item_id).strip() if item_id is not None else ""
        if not identifier:
            raise InvalidArgumentError("item id is required")
        record = MarketplaceItemRecord(
            id=identifier,
            item_type=coerce_entity_type(item_type),
            artist_id=str(artist_id) if artist_id is not None else None,
            curator_id=str(curator_id) if curator_id is not None else None,
            category=category or None,
            published=published,
            annotations={str(key): float(value) for key, value in (annotations or {}).items()},
        )
        await self.store.upsert_item(record)
        return record

    async def add_collection_member(self, collection_id: Any, artwork_id: Any) -> None:
        if not str(collection_id or "").strip() or not str(artwork_id or "").strip():
            raise InvalidArgumentError("collection_id and artwork_id are required")
        await self.store.add_collection_member(str(collection_id).strip(), str(artwork_id).strip())


def build_service(
    app_settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    store: MetricStore | None = None,
    registry: CurationRegistry | None = None,
    observability: RankingObservabilityStore | None = None,
    clock: Clock | None = None,
) -> MarketMetricsService:
    """Assemble a service from settings; every collaborator can be overridden."""

    config = app_settings or get_settings()
    now = clock or _utcnow
    observability = observability or RankingObservabilityStore()
    if store is None:
        if session_factory is None:
            from marketpulse.db.session import async_session

            session_factory = async_session
        store = SQLAlchemyMetricStore(session_factory)
    if registry is None:
        registry = CurationRegistry(observability=observability)
    elif registry.observability is None:
        registry.observability = observability

    cache = QueryCache(clock=now, observability=observability)
    return MarketMetricsService(
        store=store,
        recorder=EventRecorder(store, registry=registry, observability=observability, clock=now),
        aggregation=DailyAggregationJob(
            store,
            registry=registry,
            observability=observability,
            metric_types=[coerce_metric_type(value) for value in config.aggregated_metric_types],
        ),
        queries=MetricsQueryService(store, cache, clock=now, cache_ttl_seconds=config.standard_cache_ttl_seconds),
        rankings=RankingEngine(
            store,
            cache,
            registry,
            weights=config.ranking_weights,
            observability=observability,
            clock=now,
            oversample_factor=config.ranking_oversample_factor,
            sales_oversample_factor=config.sales_leaderboard_oversample_factor,
            cache_ttl_seconds=config.standard_cache_ttl_seconds,
            default_timeout=config.ranking_timeout_seconds,
        ),
        trending=TrendingCalculator(
            store,
            cache,
            registry,
            observability=observability,
            clock=now,
            window_days=config.trending_window_days,
            oversample_factor=config.trending_oversample_factor,
            cache_ttl_seconds=config.trending_cache_ttl_seconds,
            default_timeout=config.ranking_timeout_seconds,
        ),
        cache=cache,
        registry=registry,
        observability=observability,
        clock=now,
    )


__all__ = ["MarketMetricsService", "build_service"]
