"""Read-side metrics queries: bucketed series and top-N by metric."""

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

from loguru import logger

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import (
    BucketPeriod,
    CandidateEntity,
    EntityType,
    MetricBucket,
    MetricType,
    coerce_bucket_period,
    coerce_entity_type,
    coerce_metric_type,
)
from marketpulse.services.cache import QueryCache, build_cache_key
from marketpulse.services.rankings.engine import validate_count
from marketpulse.services.rankings.scoring import assign_ranks, order_candidates
from marketpulse.store.base import MetricStore

Clock = Callable[[], datetime]

VIEW_METRICS = (MetricType.ARTWORK_VIEW, MetricType.ARTIST_VIEW)

# Entity class that a metric's subject_id refers to.
SUBJECT_ENTITIES: dict[MetricType, EntityType] = {
    MetricType.ARTWORK_VIEW: EntityType.ARTWORK,
    MetricType.ARTWORK_SALE: EntityType.ARTWORK,
    MetricType.AI_INTERACTION: EntityType.ARTWORK,
    MetricType.NFT_MINTING: EntityType.ARTWORK,
    MetricType.ARTIST_VIEW: EntityType.ARTIST,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _months_back(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def default_start(period: BucketPeriod, today: date) -> date:
    if period is BucketPeriod.DAILY:
        return today - timedelta(days=7)
    if period is BucketPeriod.WEEKLY:
        return today - timedelta(weeks=8)
    if period is BucketPeriod.MONTHLY:
        return _months_back(today, 6)
    return _months_back(today, 24)


def _parse_day(value: date | str | None, label: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise InvalidArgumentError(f"{label} must be an ISO date (YYYY-MM-DD), got {value!r}") from exc


class MetricsQueryService:
    def __init__(
        self,
        store: MetricStore,
        cache: QueryCache,
        *,
        clock: Clock | None = None,
        cache_ttl_seconds: float = 3600,
    ) -> None:
        self._store = store
        self._cache = cache
        self._clock = clock or _utcnow
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)

    async def get_metrics(
        self,
        metric_type: MetricType | str,
        period: BucketPeriod | str = BucketPeriod.DAILY,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> list[MetricBucket]:
        """Event totals grouped into calendar buckets over ``[start_date, end_date]``."""

        kind = coerce_metric_type(metric_type)
        bucket = coerce_bucket_period(period)
        today = self._clock().date()
        end = _parse_day(end_date, "end_date") or today
        start = _parse_day(start_date, "start_date") or default_start(bucket, end)
        if start > end:
            raise InvalidArgumentError(f"start_date {start.isoformat()} is after end_date {end.isoformat()}")

        key = build_cache_key("metrics", metric_type=kind, period=bucket, start=start, end=end)
        result = await self._cache.get_or_compute(
            key, self._cache_ttl, lambda: self._compute_buckets(kind, bucket, start, end)
        )
        return list(result)

    async def _compute_buckets(
        self, metric_type: MetricType, period: BucketPeriod, start: date, end: date
    ) -> tuple[MetricBucket, ...]:
        days = await self._store.summarize_days(
            metric_type,
            since=datetime.combine(start, time.min, tzinfo=timezone.utc),
            until=datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc),
        )
        totals: dict[str, list[float]] = {}
        for row in days:
            slot = totals.setdefault(period.label(row.day), [0.0, 0])
            slot[0] += row.total_value
            slot[1] += row.event_count
        return tuple(
            MetricBucket(period_bucket=label, total_value=total, count=int(count))
            for label, (total, count) in sorted(totals.items())
        )

    async def get_sales_metrics(
        self,
        period: BucketPeriod | str = BucketPeriod.DAILY,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> list[MetricBucket]:
        return await self.get_metrics(MetricType.ARTWORK_SALE, period, start_date, end_date)

    async def get_view_metrics(
        self,
        view_type: MetricType | str = MetricType.ARTWORK_VIEW,
        period: BucketPeriod | str = BucketPeriod.DAILY,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> list[MetricBucket]:
        kind = coerce_metric_type(view_type)
        if kind not in VIEW_METRICS:
            raise InvalidArgumentError(f"{kind.value} is not a view metric")
        return await self.get_metrics(kind, period, start_date, end_date)

    async def get_top_items(
        self,
        metric_type: MetricType | str,
        item_type: EntityType | str,
        limit: int = 10,
        lookback_days: int = 30,
    ) -> list[CandidateEntity]:
        """Top subjects by event volume (or summed value for sales) in the lookback window."""

        kind = coerce_metric_type(metric_type)
        entity = coerce_entity_type(item_type)
        subject = SUBJECT_ENTITIES.get(kind)
        rolls_up = subject is EntityType.ARTWORK and entity is EntityType.ARTIST
        if subject is None or (entity is not subject and not rolls_up):
            raise InvalidArgumentError(f"top {entity.value} items cannot be derived from {kind.value} events")
        limit = validate_count(limit, label="limit")
        lookback_days = validate_count(lookback_days, label="lookback_days")
        if limit == 0 or lookback_days == 0:
            return []

        key = build_cache_key("top_items", metric_type=kind, item_type=entity, limit=limit, days=lookback_days)
        result = await self._cache.get_or_compute(
            key, self._cache_ttl, lambda: self._compute_top_items(kind, entity, limit, lookback_days)
        )
        return list(result)

    async def _compute_top_items(
        self, metric_type: MetricType, item_type: EntityType, limit: int, lookback_days: int
    ) -> tuple[CandidateEntity, ...]:
        since = self._clock() - timedelta(days=lookback_days)
        rows = await self._store.summarize_activity([metric_type], since=since)

        counts: dict[str, int] = defaultdict(int)
        totals: dict[str, float] = defaultdict(float)
        latest: dict[str, datetime] = {}
        rollup = item_type is EntityType.ARTIST and SUBJECT_ENTITIES[metric_type] is EntityType.ARTWORK
        owners: dict[str, str | None] = {}
        if rollup:
            items = await self._store.fetch_items([row.subject_id for row in rows])
            owners = {subject: item.artist_id for subject, item in items.items()}

        for row in rows:
            subject = owners.get(row.subject_id) if rollup else row.subject_id
            if not subject:
                continue
            counts[subject] += row.event_count
            totals[subject] += row.total_value
            if subject not in latest or row.last_occurred_at > latest[subject]:
                latest[subject] = row.last_occurred_at

        by_value = metric_type is MetricType.ARTWORK_SALE
        candidates = [
            CandidateEntity(
                id=subject,
                raw_metrics={"count": float(counts[subject]), "total_value": totals[subject]},
                computed_score=max(0.0, totals[subject]) if by_value else float(counts[subject]),
                last_activity_at=latest[subject],
            )
            for subject in counts
        ]
        ranked = assign_ranks(order_candidates(candidates)[:limit])
        logger.bind(metric_type=metric_type.value, item_type=item_type.value).debug(
            "Computed top items", candidates=len(candidates), returned=len(ranked)
        )
        return tuple(ranked)


__all__ = ["MetricsQueryService", "SUBJECT_ENTITIES", "VIEW_METRICS", "default_start"]
