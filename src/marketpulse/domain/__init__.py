"""Domain value types."""

from .metrics import (
    BucketPeriod,
    CandidateEntity,
    DailyAggregateRecord,
    DailyTotal,
    EntityType,
    EventFilter,
    MarketplaceItemRecord,
    MetricBucket,
    MetricEventRecord,
    MetricType,
    RankingPeriod,
    SubjectActivity,
    as_utc,
    coerce_bucket_period,
    coerce_entity_type,
    coerce_metric_type,
    coerce_ranking_period,
)

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
