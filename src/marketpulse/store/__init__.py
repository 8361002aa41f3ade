"""Persistence backends for events, aggregates and catalogue data."""

from .base import MetricStore, item_matches
from .sqlalchemy import SQLAlchemyMetricStore

__all__ = ["MetricStore", "SQLAlchemyMetricStore", "item_matches"]
