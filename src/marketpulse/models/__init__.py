"""SQLAlchemy models package."""

from .catalog import CollectionMembership, MarketplaceItem  # noqa: F401
from .metrics import DailyMetricAggregate, MetricEvent, SubjectCounter  # noqa: F401

__all__ = [
    "CollectionMembership",
    "DailyMetricAggregate",
    "MarketplaceItem",
    "MetricEvent",
    "SubjectCounter",
]
