"""Cached multi-factor rankings for artworks, artists and collections."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from loguru import logger
from opentelemetry import trace

from marketpulse.core.errors import InvalidArgumentError, OperationTimeoutError
from marketpulse.domain import (
    CandidateEntity,
    EntityType,
    RankingPeriod,
    coerce_entity_type,
    coerce_ranking_period,
)
from marketpulse.observability.rankings import RankingObservabilityStore
from marketpulse.services.cache import QueryCache, build_cache_key
from marketpulse.services.curation import CurationContext, CurationRegistry, apply_curation
from marketpulse.services.deadlines import run_with_timeout
from marketpulse.services.rankings.candidates import CandidateAssembler
from marketpulse.services.rankings.scoring import (
    RankingWeightProfile,
    assign_ranks,
    build_weight_profiles,
    order_candidates,
    score_candidates,
)
from marketpulse.store.base import MetricStore

Clock = Callable[[], datetime]
T = TypeVar("T")

tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_count(value: Any, *, label: str = "count") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{label} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidArgumentError(f"{label} must not be negative")
    return value


def normalize_category(category: str | None) -> str | None:
    if category is None:
        return None
    normalized = str(category).strip()
    return normalized or None


async def bounded(
    operation: str,
    awaitable: Awaitable[T],
    timeout: float | None,
    observability: RankingObservabilityStore | None,
) -> T:
    if observability is not None:
        observability.record_request(operation)
    try:
        return await run_with_timeout(operation, awaitable, timeout)
    except OperationTimeoutError:
        if observability is not None:
            observability.record_timeout(operation)
        raise


class RankingEngine:
    """Scores oversampled candidate pools and hands the top slice to curation."""

    def __init__(
        self,
        store: MetricStore,
        cache: QueryCache,
        registry: CurationRegistry,
        *,
        weights: Mapping[str, Mapping[str, float]] | None = None,
        observability: RankingObservabilityStore | None = None,
        clock: Clock | None = None,
        oversample_factor: int = 3,
        sales_oversample_factor: int = 2,
        cache_ttl_seconds: float = 3600,
        default_timeout: float | None = None,
    ) -> None:
        self._assembler = CandidateAssembler(store)
        self._cache = cache
        self._registry = registry
        self._profiles = build_weight_profiles(weights)
        self._observability = observability
        self._clock = clock or _utcnow
        self._oversample_factor = max(1, oversample_factor)
        self._sales_oversample_factor = max(1, sales_oversample_factor)
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._default_timeout = default_timeout

    @property
    def profiles(self) -> dict[EntityType, RankingWeightProfile]:
        return dict(self._profiles)

    async def get_rankings(
        self,
        entity_type: EntityType | str,
        count: int = 10,
        category: str | None = None,
        period: RankingPeriod | str = RankingPeriod.THIRTY_DAYS,
        *,
        timeout: float | None = None,
    ) -> list[CandidateEntity]:
        kind = coerce_entity_type(entity_type)
        lookback = coerce_ranking_period(period)
        count = validate_count(count)
        category = normalize_category(category)
        if count == 0:
            return []

        key = build_cache_key("rankings", entity_type=kind, count=count, category=category, period=lookback)
        result = await bounded(
            "rankings",
            self._cache.get_or_compute(
                key, self._cache_ttl, lambda: self._compute_rankings(kind, count, category, lookback)
            ),
            timeout if timeout is not None else self._default_timeout,
            self._observability,
        )
        return list(result)

    async def _compute_rankings(
        self,
        entity_type: EntityType,
        count: int,
        category: str | None,
        period: RankingPeriod,
    ) -> tuple[CandidateEntity, ...]:
        with tracer.start_as_current_span("marketpulse.rankings.compute") as span:
            span.set_attribute("marketpulse.entity_type", entity_type.value)
            span.set_attribute("marketpulse.period", period.value)
            now = self._clock()
            days = period.lookback_days
            assemble = {
                EntityType.ARTWORK: self._assembler.artworks,
                EntityType.ARTIST: self._assembler.artists,
                EntityType.COLLECTION: self._assembler.collections,
            }[entity_type]
            pool = await assemble(
                since=now - timedelta(days=days),
                now=now,
                lookback_days=days,
                category=category,
                pool_size=count * self._oversample_factor,
            )
            ranked = order_candidates(score_candidates(pool, self._profiles[entity_type]))[:count]
            curated = await apply_curation(
                self._registry.resolve("rankings", entity_type),
                ranked,
                CurationContext(
                    operation="rankings",
                    entity_type=entity_type,
                    limit=count,
                    category=category,
                    period=period,
                ),
                observability=self._observability,
            )
            span.set_attribute("marketpulse.pool_size", len(pool))

        logger.bind(entity_type=entity_type.value, period=period.value, category=category).info(
            "Computed rankings", pool_size=len(pool), returned=min(count, len(curated))
        )
        return tuple(assign_ranks(curated[:count]))

    async def get_sales_leaderboard(
        self,
        count: int = 10,
        category: str | None = None,
        period: RankingPeriod | str = RankingPeriod.THIRTY_DAYS,
        *,
        timeout: float | None = None,
    ) -> list[CandidateEntity]:
        """Artworks ordered by revenue, then sales count, then recency."""

        lookback = coerce_ranking_period(period)
        count = validate_count(count)
        category = normalize_category(category)
        if count == 0:
            return []

        key = build_cache_key("sales_leaderboard", count=count, category=category, period=lookback)
        result = await bounded(
            "sales_leaderboard",
            self._cache.get_or_compute(
                key, self._cache_ttl, lambda: self._compute_sales_leaderboard(count, category, lookback)
            ),
            timeout if timeout is not None else self._default_timeout,
            self._observability,
        )
        return list(result)

    async def _compute_sales_leaderboard(
        self, count: int, category: str | None, period: RankingPeriod
    ) -> tuple[CandidateEntity, ...]:
        with tracer.start_as_current_span("marketpulse.sales_leaderboard.compute") as span:
            span.set_attribute("marketpulse.period", period.value)
            now = self._clock()
            days = period.lookback_days
            pool = await self._assembler.sales(
                since=now - timedelta(days=days),
                now=now,
                lookback_days=days,
                category=category,
                pool_size=count * self._sales_oversample_factor,
            )
            curated = await apply_curation(
                self._registry.resolve("sales_leaderboard", EntityType.ARTWORK),
                pool[:count],
                CurationContext(
                    operation="sales_leaderboard",
                    entity_type=EntityType.ARTWORK,
                    limit=count,
                    category=category,
                    period=period,
                ),
                observability=self._observability,
            )
        return tuple(assign_ranks(curated[:count]))


__all__ = ["RankingEngine", "bounded", "normalize_category", "validate_count"]
