"""Idempotent daily rollup of the event log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Sequence

from loguru import logger
from opentelemetry import trace

from marketpulse.core.errors import AggregationConflict
from marketpulse.domain import MetricType
from marketpulse.observability.rankings import RankingObservabilityStore
from marketpulse.services.curation import CurationRegistry
from marketpulse.store.base import MetricStore

DEFAULT_AGGREGATED_TYPES: tuple[MetricType, ...] = (
    MetricType.ARTWORK_VIEW,
    MetricType.ARTIST_VIEW,
    MetricType.ARTWORK_SALE,
    MetricType.AI_INTERACTION,
)

STATUS_AGGREGATED = "aggregated"
STATUS_ALREADY_AGGREGATED = "already_aggregated"
STATUS_ERROR = "error"

tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class MetricTypeOutcome:
    metric_type: MetricType
    status: str
    event_count: int | None = None
    total_value: float | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "metric_type": self.metric_type.value,
            "status": self.status,
            "event_count": self.event_count,
            "total_value": self.total_value,
            "error": self.error,
        }


@dataclass(slots=True)
class AggregationReport:
    metric_date: date
    outcomes: list[MetricTypeOutcome] = field(default_factory=list)
    learning_notified: bool = False

    @property
    def succeeded(self) -> bool:
        return all(outcome.status != STATUS_ERROR for outcome in self.outcomes)

    def statuses(self) -> dict[str, str]:
        return {outcome.metric_type.value: outcome.status for outcome in self.outcomes}

    def as_dict(self) -> dict[str, Any]:
        return {
            "metric_date": self.metric_date.isoformat(),
            "succeeded": self.succeeded,
            "learning_notified": self.learning_notified,
            "outcomes": [outcome.as_dict() for outcome in self.outcomes],
        }


def day_window(metric_date: date) -> tuple[datetime, datetime]:
    """Half-open UTC window covering ``metric_date``."""

    start = datetime.combine(metric_date, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class DailyAggregationJob:
    """Writes one aggregate row per tracked metric type and day, exactly once."""

    def __init__(
        self,
        store: MetricStore,
        *,
        registry: CurationRegistry | None = None,
        observability: RankingObservabilityStore | None = None,
        metric_types: Sequence[MetricType] = DEFAULT_AGGREGATED_TYPES,
    ) -> None:
        self._store = store
        self._registry = registry
        self._observability = observability
        self._metric_types = tuple(dict.fromkeys(metric_types))

    async def run(self, metric_date: date) -> AggregationReport:
        report = AggregationReport(metric_date=metric_date)
        with tracer.start_as_current_span("marketpulse.aggregation.run") as span:
            span.set_attribute("marketpulse.metric_date", metric_date.isoformat())
            # Types run one after another; a failure in one never blocks the rest.
            for metric_type in self._metric_types:
                report.outcomes.append(await self._aggregate(metric_type, metric_date))

            if report.succeeded and self._registry is not None:
                summary = {
                    outcome.metric_type.value: {
                        "count": outcome.event_count or 0,
                        "total_value": outcome.total_value or 0.0,
                    }
                    for outcome in report.outcomes
                }
                await self._registry.notify_daily_summary(metric_date, summary)
                report.learning_notified = True
            span.set_attribute("marketpulse.aggregation.succeeded", report.succeeded)

        if self._observability is not None:
            self._observability.record_aggregation(metric_date.isoformat(), report.statuses())
        logger.bind(summary=report.as_dict()).info("Daily metric aggregation finished")
        return report

    async def _aggregate(self, metric_type: MetricType, metric_date: date) -> MetricTypeOutcome:
        try:
            existing = await self._store.get_aggregates(metric_date=metric_date, metric_type=metric_type)
            if existing:
                row = existing[0]
                return MetricTypeOutcome(
                    metric_type=metric_type,
                    status=STATUS_ALREADY_AGGREGATED,
                    event_count=row.event_count,
                    total_value=row.total_value,
                )

            since, until = day_window(metric_date)
            event_count, total_value = await self._store.summarize_window(metric_type, since=since, until=until)
            try:
                inserted = await self._store.insert_aggregate_if_absent(
                    metric_type, metric_date, event_count, total_value
                )
                if not inserted:
                    raise AggregationConflict(metric_type.value, metric_date.isoformat())
            except AggregationConflict as conflict:
                logger.bind(metric_type=metric_type.value).info("Aggregate written concurrently", detail=str(conflict))
                stored = await self._store.get_aggregates(metric_date=metric_date, metric_type=metric_type)
                row = stored[0] if stored else None
                return MetricTypeOutcome(
                    metric_type=metric_type,
                    status=STATUS_ALREADY_AGGREGATED,
                    event_count=row.event_count if row else event_count,
                    total_value=row.total_value if row else total_value,
                )
        except Exception as exc:
            logger.bind(metric_type=metric_type.value, metric_date=metric_date.isoformat()).exception(
                "Metric aggregation failed"
            )
            return MetricTypeOutcome(metric_type=metric_type, status=STATUS_ERROR, error=str(exc))

        return MetricTypeOutcome(
            metric_type=metric_type,
            status=STATUS_AGGREGATED,
            event_count=event_count,
            total_value=total_value,
        )


__all__ = [
    "AggregationReport",
    "DEFAULT_AGGREGATED_TYPES",
    "DailyAggregationJob",
    "MetricTypeOutcome",
    "STATUS_AGGREGATED",
    "STATUS_ALREADY_AGGREGATED",
    "STATUS_ERROR",
    "day_window",
]
