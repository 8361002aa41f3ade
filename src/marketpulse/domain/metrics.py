"""Value types shared by the recorder, store, aggregation job and rankings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from marketpulse.core.errors import InvalidArgumentError


class MetricType(str, Enum):
    ARTWORK_VIEW = "artwork_view"
    ARTIST_VIEW = "artist_view"
    ARTWORK_SALE = "artwork_sale"
    AI_INTERACTION = "ai_interaction"
    NFT_MINTING = "nft_minting"
    SEARCH_QUERY = "search_query"


class EntityType(str, Enum):
    ARTWORK = "artwork"
    ARTIST = "artist"
    COLLECTION = "collection"


class RankingPeriod(str, Enum):
    SEVEN_DAYS = "7days"
    THIRTY_DAYS = "30days"
    NINETY_DAYS = "90days"
    ALL_TIME = "alltime"

    @property
    def lookback_days(self) -> int:
        return _PERIOD_DAYS[self]


_PERIOD_DAYS = {
    RankingPeriod.SEVEN_DAYS: 7,
    RankingPeriod.THIRTY_DAYS: 30,
    RankingPeriod.NINETY_DAYS: 90,
    RankingPeriod.ALL_TIME: 3650,
}


class BucketPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    def label(self, moment: date) -> str:
        if self is BucketPeriod.DAILY:
            return moment.strftime("%Y-%m-%d")
        if self is BucketPeriod.WEEKLY:
            iso_year, iso_week, _ = moment.isocalendar()
            return f"{iso_year}-{iso_week:02d}"
        if self is BucketPeriod.MONTHLY:
            return moment.strftime("%Y-%m")
        return moment.strftime("%Y")


def _coerce_enum(enum_cls: type[Enum], value: Any, label: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidArgumentError(f"unknown {label} {value!r}; expected one of: {allowed}") from exc


def coerce_metric_type(value: MetricType | str) -> MetricType:
    return _coerce_enum(MetricType, value, "metric type")


def coerce_entity_type(value: EntityType | str) -> EntityType:
    return _coerce_enum(EntityType, value, "entity type")


def coerce_ranking_period(value: RankingPeriod | str) -> RankingPeriod:
    return _coerce_enum(RankingPeriod, value, "ranking period")


def coerce_bucket_period(value: BucketPeriod | str) -> BucketPeriod:
    return _coerce_enum(BucketPeriod, value, "bucket period")


def as_utc(moment: datetime) -> datetime:
    """Treat naive timestamps as UTC (SQLite drops tzinfo on the way back)."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class MetricEventRecord:
    """Immutable marketplace fact."""

    metric_type: MetricType
    subject_id: str
    actor_id: str | None
    value: float
    occurred_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)
    id: int | None = None


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Event query filter; ``since`` is inclusive and ``until`` exclusive."""

    metric_types: Sequence[MetricType] = ()
    subject_ids: Sequence[str] | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None


@dataclass(frozen=True, slots=True)
class SubjectActivity:
    """Per subject and metric type activity within a window."""

    subject_id: str
    metric_type: MetricType
    event_count: int
    total_value: float
    last_occurred_at: datetime


@dataclass(frozen=True, slots=True)
class DailyTotal:
    """Events of one metric type on one UTC calendar day."""

    day: date
    event_count: int
    total_value: float


@dataclass(frozen=True, slots=True)
class DailyAggregateRecord:
    metric_type: MetricType
    metric_date: date
    event_count: int
    total_value: float


@dataclass(frozen=True, slots=True)
class MarketplaceItemRecord:
    id: str
    item_type: EntityType
    artist_id: str | None = None
    curator_id: str | None = None
    category: str | None = None
    published: bool = True
    annotations: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MetricBucket:
    period_bucket: str
    total_value: float
    count: int

    def as_dict(self) -> dict[str, Any]:
        return {"period_bucket": self.period_bucket, "total_value": self.total_value, "count": self.count}


@dataclass(frozen=True, slots=True)
class CandidateEntity:
    """Ranked entity; built per request and never persisted."""

    id: str
    raw_metrics: Mapping[str, float]
    computed_score: float
    rank: int = 0
    last_activity_at: datetime | None = None
    annotations: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Results are shared through the query cache; callers get read-only views.
        object.__setattr__(self, "raw_metrics", MappingProxyType(dict(self.raw_metrics)))
        object.__setattr__(self, "annotations", MappingProxyType(dict(self.annotations)))

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rank": self.rank,
            "computed_score": self.computed_score,
            "raw_metrics": dict(self.raw_metrics),
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "annotations": dict(self.annotations),
        }


__all__ = [
    "BucketPeriod",
    "CandidateEntity",
    "DailyAggregateRecord",
    "DailyTotal",
    "EntityType",
    "EventFilter",
    "MarketplaceItemRecord",
    "MetricBucket",
    "MetricEventRecord",
    "MetricType",
    "RankingPeriod",
    "SubjectActivity",
    "as_utc",
    "coerce_bucket_period",
    "coerce_entity_type",
    "coerce_metric_type",
    "coerce_ranking_period",
]
