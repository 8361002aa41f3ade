"""Short-window trending lists driven by raw view volume."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger
from opentelemetry import trace

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import CandidateEntity, EntityType, MetricType, coerce_entity_type
from marketpulse.observability.rankings import RankingObservabilityStore
from marketpulse.services.cache import QueryCache, build_cache_key
from marketpulse.services.curation import CurationContext, CurationRegistry, apply_curation
from marketpulse.services.rankings.candidates import CandidateAssembler
from marketpulse.services.rankings.engine import bounded, normalize_category, validate_count
from marketpulse.services.rankings.scoring import assign_ranks
from marketpulse.store.base import MetricStore

Clock = Callable[[], datetime]

TRENDING_SIGNALS: dict[EntityType, MetricType] = {
    EntityType.ARTWORK: MetricType.ARTWORK_VIEW,
    EntityType.ARTIST: MetricType.ARTIST_VIEW,
}

tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrendingCalculator:
    """Ranks by event count inside a fixed window, independent of ranking periods."""

    def __init__(
        self,
        store: MetricStore,
        cache: QueryCache,
        registry: CurationRegistry,
        *,
        observability: RankingObservabilityStore | None = None,
        clock: Clock | None = None,
        window_days: int = 7,
        oversample_factor: int = 2,
        cache_ttl_seconds: float = 1800,
        default_timeout: float | None = None,
    ) -> None:
        self._assembler = CandidateAssembler(store)
        self._cache = cache
        self._registry = registry
        self._observability = observability
        self._clock = clock or _utcnow
        self._window = timedelta(days=window_days)
        self._oversample_factor = max(1, oversample_factor)
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._default_timeout = default_timeout

    async def get_trending_items(
        self,
        item_type: EntityType | str,
        limit: int = 10,
        category: str | None = None,
        *,
        timeout: float | None = None,
    ) -> list[CandidateEntity]:
        kind = coerce_entity_type(item_type)
        if kind not in TRENDING_SIGNALS:
            raise InvalidArgumentError(f"trending is not available for {kind.value}")
        limit = validate_count(limit, label="limit")
        category = normalize_category(category)
        if limit == 0:
            return []

        key = build_cache_key("trending", item_type=kind, limit=limit, category=category)
        result = await bounded(
            "trending",
            self._cache.get_or_compute(key, self._cache_ttl, lambda: self._compute(kind, limit, category)),
            timeout if timeout is not None else self._default_timeout,
            self._observability,
        )
        return list(result)

    async def _compute(
        self, item_type: EntityType, limit: int, category: str | None
    ) -> tuple[CandidateEntity, ...]:
        with tracer.start_as_current_span("marketpulse.trending.compute") as span:
            span.set_attribute("marketpulse.item_type", item_type.value)
            now = self._clock()
            pool = await self._assembler.activity_counts(
                TRENDING_SIGNALS[item_type],
                item_type,
                since=now - self._window,
                category=category,
                pool_size=limit * self._oversample_factor,
            )
            # Curation sees the whole pool, not only the first ``limit`` entries.
            curated = await apply_curation(
                self._registry.resolve("trending", item_type),
                pool,
                CurationContext(operation="trending", entity_type=item_type, limit=limit, category=category),
                observability=self._observability,
            )
            span.set_attribute("marketpulse.pool_size", len(pool))

        logger.bind(item_type=item_type.value, category=category).info(
            "Computed trending items", pool_size=len(pool), returned=min(limit, len(curated))
        )
        return tuple(assign_ranks(curated[:limit]))


__all__ = ["TRENDING_SIGNALS", "TrendingCalculator"]
