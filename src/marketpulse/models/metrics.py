"""Event log, daily aggregates and denormalized counters."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from marketpulse.db.base import Base


class MetricEvent(Base):
    """Append-only marketplace event. Rows are never updated or deleted."""

    __tablename__ = "metric_events"
    __table_args__ = (
        Index("ix_metric_events_type_occurred_at", "metric_type", "occurred_at"),
        Index("ix_metric_events_subject_type", "subject_id", "metric_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    metric_type = Column(String(length=64), nullable=False)
    subject_id = Column(String(length=128), nullable=False)
    actor_id = Column(String(length=128), nullable=True)
    value = Column(Float, nullable=False, default=1.0)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    metadata_json = Column("metadata", JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class DailyMetricAggregate(Base):
    """Per-day rollup for one metric type, written once by the aggregation job."""

    __tablename__ = "metric_daily_aggregates"
    __table_args__ = (
        UniqueConstraint("metric_type", "metric_date", name="uq_metric_daily_aggregates_type_date"),
        Index("ix_metric_daily_aggregates_metric_date", "metric_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    metric_type = Column(String(length=64), nullable=False)
    metric_date = Column(Date(), nullable=False)
    event_count = Column(Integer, nullable=False, default=0)
    total_value = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SubjectCounter(Base):
    """Running counter derived from the event log (view counts, sales totals)."""

    # meta: cache-layer: derived
    __tablename__ = "subject_counters"

    subject_id = Column(String(length=128), primary_key=True)
    counter_name = Column(String(length=64), primary_key=True)
    value = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
