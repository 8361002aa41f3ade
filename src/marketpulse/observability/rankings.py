"""Observability store for ranking, cache, curation and aggregation metrics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AggregationRunLog:
    last_metric_date: str | None = None
    last_run_at: datetime | None = None
    last_statuses: Dict[str, str] = field(default_factory=dict)


@dataclass
class RankingSnapshot:
    events: Dict[str, int]
    recorder: Dict[str, int]
    cache: Dict[str, Dict[str, int]]
    curation: Dict[str, Dict[str, int]]
    requests: Dict[str, int]
    timeouts: Dict[str, int]
    aggregation: Dict[str, int]
    last_aggregation: AggregationRunLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "events": self.events,
            "recorder": self.recorder,
            "cache": self.cache,
            "curation": self.curation,
            "requests": self.requests,
            "timeouts": self.timeouts,
            "aggregation": {
                "totals": self.aggregation,
                "last_metric_date": self.last_aggregation.last_metric_date,
                "last_run_at": self.last_aggregation.last_run_at.isoformat()
                if self.last_aggregation.last_run_at
                else None,
                "last_statuses": self.last_aggregation.last_statuses,
            },
        }


@dataclass
class RankingObservabilityStore:
    # meta: observability: market-metrics
    _lock: Lock = field(default_factory=Lock)
    _events: Counter = field(default_factory=Counter)
    _recorder: Counter = field(default_factory=Counter)
    _cache: Dict[str, Counter] = field(default_factory=dict)
    _curation: Dict[str, Counter] = field(default_factory=dict)
    _requests: Counter = field(default_factory=Counter)
    _timeouts: Counter = field(default_factory=Counter)
    _aggregation: Counter = field(default_factory=Counter)
    _last_aggregation: AggregationRunLog = field(default_factory=AggregationRunLog)

    def record_event(self, metric_type: str) -> None:
        with self._lock:
            self._events[metric_type] += 1

    def record_counter_failure(self, counter_name: str) -> None:
        with self._lock:
            self._recorder["counter_failures"] += 1
            self._recorder[f"counter_failures:{counter_name}"] += 1

    def record_learning_failure(self, adapter: str) -> None:
        with self._lock:
            self._recorder["learning_failures"] += 1
            self._curation.setdefault(adapter, Counter())["learning_failures"] += 1

    def record_cache(self, operation: str, outcome: str) -> None:
        """Count a cache ``hit``, ``miss``, ``computation`` or ``failure`` for an operation."""

        with self._lock:
            self._cache.setdefault(operation, Counter())[outcome] += 1

    def record_request(self, operation: str) -> None:
        with self._lock:
            self._requests[operation] += 1

    def record_timeout(self, operation: str) -> None:
        with self._lock:
            self._timeouts[operation] += 1

    def record_curation(self, adapter: str, *, fallback: bool, foreign_ids: int = 0) -> None:
        with self._lock:
            counters = self._curation.setdefault(adapter, Counter())
            counters["runs"] += 1
            if fallback:
                counters["fallbacks"] += 1
            if foreign_ids:
                counters["foreign_ids_dropped"] += foreign_ids

    def record_aggregation(self, metric_date: str, statuses: Dict[str, str]) -> None:
        with self._lock:
            self._aggregation["runs"] += 1
            for status in statuses.values():
                self._aggregation[status] += 1
            self._last_aggregation = AggregationRunLog(
                last_metric_date=metric_date,
                last_run_at=_utcnow(),
                last_statuses=dict(statuses),
            )

    def snapshot(self) -> RankingSnapshot:
        with self._lock:
            recorder = dict(self._recorder)
            recorder.setdefault("counter_failures", 0)
            recorder.setdefault("learning_failures", 0)
            aggregation = dict(self._aggregation)
            aggregation.setdefault("runs", 0)
            return RankingSnapshot(
                events=dict(self._events),
                recorder=recorder,
                cache={operation: dict(counts) for operation, counts in self._cache.items()},
                curation={adapter: dict(counts) for adapter, counts in self._curation.items()},
                requests=dict(self._requests),
                timeouts=dict(self._timeouts),
                aggregation=aggregation,
                last_aggregation=AggregationRunLog(
                    last_metric_date=self._last_aggregation.last_metric_date,
                    last_run_at=self._last_aggregation.last_run_at,
                    last_statuses=dict(self._last_aggregation.last_statuses),
                ),
            )

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._recorder.clear()
            self._cache.clear()
            self._curation.clear()
            self._requests.clear()
            self._timeouts.clear()
            self._aggregation.clear()
            self._last_aggregation = AggregationRunLog()


__all__ = ["AggregationRunLog", "RankingObservabilityStore", "RankingSnapshot"]
