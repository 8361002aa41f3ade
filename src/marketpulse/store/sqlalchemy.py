"""SQLAlchemy-backed metric store (PostgreSQL in production, SQLite locally and in tests)."""

from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Sequence

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import func

from marketpulse.core.errors import StorageError
from marketpulse.domain import (
    DailyAggregateRecord,
    DailyTotal,
    EntityType,
    EventFilter,
    MarketplaceItemRecord,
    MetricEventRecord,
    MetricType,
    SubjectActivity,
    as_utc,
)
from marketpulse.models.catalog import CollectionMembership, MarketplaceItem
from marketpulse.models.metrics import DailyMetricAggregate, MetricEvent, SubjectCounter


class SQLAlchemyMetricStore:
    """Store implementation that opens one short-lived session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.bind(operation=operation).warning("Metric store operation failed", error=str(exc))
            raise StorageError(operation, str(exc)) from exc

    # Events

    async def append_event(self, record: MetricEventRecord) -> int:
        async with self._session("append_event") as session:
            row = MetricEvent(
                metric_type=record.metric_type.value,
                subject_id=record.subject_id,
                actor_id=record.actor_id,
                value=record.value,
                occurred_at=as_utc(record.occurred_at),
                metadata_json=dict(record.metadata),
            )
            session.add(row)
            await session.flush()
            event_id = int(row.id)
            await session.commit()
            return event_id

    async def query_events(self, event_filter: EventFilter) -> list[MetricEventRecord]:
        stmt = select(MetricEvent)
        if event_filter.metric_types:
            stmt = stmt.where(MetricEvent.metric_type.in_([t.value for t in event_filter.metric_types]))
        if event_filter.subject_ids is not None:
            stmt = stmt.where(MetricEvent.subject_id.in_(list(event_filter.subject_ids)))
        if event_filter.since is not None:
            stmt = stmt.where(MetricEvent.occurred_at >= as_utc(event_filter.since))
        if event_filter.until is not None:
            stmt = stmt.where(MetricEvent.occurred_at < as_utc(event_filter.until))
        stmt = stmt.order_by(MetricEvent.occurred_at.asc(), MetricEvent.id.asc())
        if event_filter.limit is not None:
            stmt = stmt.limit(event_filter.limit)

        async with self._session("query_events") as session:
            result = await session.execute(stmt)
            return [_event_record(row) for row in result.scalars()]

    async def summarize_activity(
        self,
        metric_types: Sequence[MetricType],
        *,
        since: datetime,
        until: datetime | None = None,
        subject_ids: Sequence[str] | None = None,
    ) -> list[SubjectActivity]:
        if not metric_types:
            return []
        stmt = (
            select(
                MetricEvent.subject_id,
                MetricEvent.metric_type,
                func.count(MetricEvent.id).label("event_count"),
                func.coalesce(func.sum(MetricEvent.value), 0.0).label("total_value"),
                func.max(MetricEvent.occurred_at).label("last_occurred_at"),
            )
            .where(
                MetricEvent.metric_type.in_([t.value for t in metric_types]),
                MetricEvent.occurred_at >= as_utc(since),
            )
            .group_by(MetricEvent.subject_id, MetricEvent.metric_type)
        )
        if until is not None:
            stmt = stmt.where(MetricEvent.occurred_at < as_utc(until))
        if subject_ids is not None:
            if not subject_ids:
                return []
            stmt = stmt.where(MetricEvent.subject_id.in_(list(subject_ids)))

        async with self._session("summarize_activity") as session:
            result = await session.execute(stmt)
            return [
                SubjectActivity(
                    subject_id=row.subject_id,
                    metric_type=MetricType(row.metric_type),
                    event_count=int(row.event_count or 0),
                    total_value=float(row.total_value or 0.0),
                    last_occurred_at=_parse_timestamp(row.last_occurred_at),
                )
                for row in result
            ]

    async def summarize_days(
        self, metric_type: MetricType, *, since: datetime, until: datetime
    ) -> list[DailyTotal]:
        """Per UTC day event count and value sum over the half-open window."""

        async with self._session("summarize_days") as session:
            if session.get_bind().dialect.name == "postgresql":
                day = func.date(func.timezone("UTC", MetricEvent.occurred_at))
            else:
                day = func.date(MetricEvent.occurred_at)
            stmt = (
                select(
                    day.label("day"),
                    func.count(MetricEvent.id).label("event_count"),
                    func.coalesce(func.sum(MetricEvent.value), 0.0).label("total_value"),
                )
                .where(
                    MetricEvent.metric_type == metric_type.value,
                    MetricEvent.occurred_at >= as_utc(since),
                    MetricEvent.occurred_at < as_utc(until),
                )
                .group_by(day)
                .order_by(day)
            )
            result = await session.execute(stmt)
            return [
                DailyTotal(
                    day=_parse_day(row.day),
                    event_count=int(row.event_count or 0),
                    total_value=float(row.total_value or 0.0),
                )
                for row in result
            ]

    async def summarize_window(
        self, metric_type: MetricType, *, since: datetime, until: datetime
    ) -> tuple[int, float]:
        stmt = select(
            func.count(MetricEvent.id),
            func.coalesce(func.sum(MetricEvent.value), 0.0),
        ).where(
            MetricEvent.metric_type == metric_type.value,
            MetricEvent.occurred_at >= as_utc(since),
            MetricEvent.occurred_at < as_utc(until),
        )
        async with self._session("summarize_window") as session:
            count, total = (await session.execute(stmt)).one()
            return int(count or 0), float(total or 0.0)

    # Aggregates

    async def insert_aggregate_if_absent(
        self, metric_type: MetricType, metric_date: date, event_count: int, total_value: float
    ) -> bool:
        async with self._session("insert_aggregate") as session:
            session.add(
                DailyMetricAggregate(
                    metric_type=metric_type.value,
                    metric_date=metric_date,
                    event_count=event_count,
                    total_value=total_value,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
            return True

    async def get_aggregates(
        self, *, metric_date: date | None = None, metric_type: MetricType | None = None
    ) -> list[DailyAggregateRecord]:
        stmt = select(DailyMetricAggregate).order_by(
            DailyMetricAggregate.metric_date.asc(), DailyMetricAggregate.metric_type.asc()
        )
        if metric_date is not None:
            stmt = stmt.where(DailyMetricAggregate.metric_date == metric_date)
        if metric_type is not None:
            stmt = stmt.where(DailyMetricAggregate.metric_type == metric_type.value)

        async with self._session("get_aggregates") as session:
            result = await session.execute(stmt)
            return [
                DailyAggregateRecord(
                    metric_type=MetricType(row.metric_type),
                    metric_date=row.metric_date,
                    event_count=int(row.event_count),
                    total_value=float(row.total_value),
                )
                for row in result.scalars()
            ]

    # Counters

    async def increment_counter(self, subject_id: str, counter_name: str, delta: float) -> None:
        async with self._session("increment_counter") as session:
            dialect = session.get_bind().dialect.name
            if dialect in {"postgresql", "sqlite"}:
                insert_fn = postgresql_insert if dialect == "postgresql" else sqlite_insert
                stmt = insert_fn(SubjectCounter).values(
                    subject_id=subject_id, counter_name=counter_name, value=delta
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[SubjectCounter.subject_id, SubjectCounter.counter_name],
                    set_={"value": SubjectCounter.value + stmt.excluded.value, "updated_at": func.now()},
                )
                await session.execute(stmt)
                await session.commit()
                return

            await self._increment_portable(session, subject_id, counter_name, delta)

    async def _increment_portable(
        self, session: AsyncSession, subject_id: str, counter_name: str, delta: float
    ) -> None:
        increment = (
            update(SubjectCounter)
            .where(SubjectCounter.subject_id == subject_id, SubjectCounter.counter_name == counter_name)
            .values(value=SubjectCounter.value + delta)
        )
        result = await session.execute(increment)
        if result.rowcount:
            await session.commit()
            return
        session.add(SubjectCounter(subject_id=subject_id, counter_name=counter_name, value=delta))
        try:
            await session.commit()
        except IntegrityError:
            # A concurrent writer created the row first.
            await session.rollback()
            await session.execute(increment)
            await session.commit()

    async def get_counters(self, subject_id: str) -> dict[str, float]:
        stmt = select(SubjectCounter.counter_name, SubjectCounter.value).where(
            SubjectCounter.subject_id == subject_id
        )
        async with self._session("get_counters") as session:
            result = await session.execute(stmt)
            return {name: float(value) for name, value in result.all()}

    # Catalogue

    async def fetch_items(self, item_ids: Sequence[str]) -> dict[str, MarketplaceItemRecord]:
        if not item_ids:
            return {}
        stmt = select(MarketplaceItem).where(MarketplaceItem.id.in_(list(set(item_ids))))
        async with self._session("fetch_items") as session:
            result = await session.execute(stmt)
            return {row.id: _item_record(row) for row in result.scalars()}

    async def artworks_by_artist(self, artist_ids: Sequence[str]) -> dict[str, list[MarketplaceItemRecord]]:
        if not artist_ids:
            return {}
        stmt = (
            select(MarketplaceItem)
            .where(
                MarketplaceItem.item_type == EntityType.ARTWORK.value,
                MarketplaceItem.artist_id.in_(list(set(artist_ids))),
                MarketplaceItem.published.is_(True),
            )
            .order_by(MarketplaceItem.id.asc())
        )
        async with self._session("artworks_by_artist") as session:
            result = await session.execute(stmt)
            portfolio: dict[str, list[MarketplaceItemRecord]] = defaultdict(list)
            for row in result.scalars():
                portfolio[row.artist_id].append(_item_record(row))
            return dict(portfolio)

    async def collections_for_artworks(self, artwork_ids: Sequence[str]) -> dict[str, list[str]]:
        if not artwork_ids:
            return {}
        stmt = (
            select(CollectionMembership.artwork_id, CollectionMembership.collection_id)
            .where(CollectionMembership.artwork_id.in_(list(set(artwork_ids))))
            .order_by(CollectionMembership.collection_id.asc())
        )
        async with self._session("collections_for_artworks") as session:
            result = await session.execute(stmt)
            mapping: dict[str, list[str]] = defaultdict(list)
            for artwork_id, collection_id in result.all():
                mapping[artwork_id].append(collection_id)
            return dict(mapping)

    async def collection_members(self, collection_ids: Sequence[str]) -> dict[str, list[str]]:
        if not collection_ids:
            return {}
        stmt = (
            select(CollectionMembership.collection_id, CollectionMembership.artwork_id)
            .where(CollectionMembership.collection_id.in_(list(set(collection_ids))))
            .order_by(CollectionMembership.artwork_id.asc())
        )
        async with self._session("collection_members") as session:
            result = await session.execute(stmt)
            members: dict[str, list[str]] = defaultdict(list)
            for collection_id, artwork_id in result.all():
                members[collection_id].append(artwork_id)
            return dict(members)

    async def upsert_item(self, record: MarketplaceItemRecord) -> None:
        async with self._session("upsert_item") as session:
            await session.merge(
                MarketplaceItem(
                    id=record.id,
                    item_type=record.item_type.value,
                    artist_id=record.artist_id,
                    curator_id=record.curator_id,
                    category=record.category,
                    published=record.published,
                    annotations=dict(record.annotations),
                )
            )
            await session.commit()

    async def add_collection_member(self, collection_id: str, artwork_id: str) -> None:
        async with self._session("add_collection_member") as session:
            existing = await session.get(CollectionMembership, (collection_id, artwork_id))
            if existing is not None:
                return
            session.add(CollectionMembership(collection_id=collection_id, artwork_id=artwork_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()


def _parse_day(value: Any) -> date:
    # SQLite returns date() results as text.
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    if isinstance(value, datetime):
        return value.date()
    return value


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return as_utc(value)


def _event_record(row: MetricEvent) -> MetricEventRecord:
    metadata = row.metadata_json if isinstance(row.metadata_json, dict) else {}
    return MetricEventRecord(
        id=int(row.id),
        metric_type=MetricType(row.metric_type),
        subject_id=row.subject_id,
        actor_id=row.actor_id,
        value=float(row.value),
        occurred_at=as_utc(row.occurred_at),
        metadata=metadata,
    )


def _item_record(row: MarketplaceItem) -> MarketplaceItemRecord:
    annotations: dict[str, float] = {}
    if isinstance(row.annotations, dict):
        for key, value in row.annotations.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                annotations[str(key)] = float(value)
    return MarketplaceItemRecord(
        id=row.id,
        item_type=EntityType(row.item_type),
        artist_id=row.artist_id,
        curator_id=row.curator_id,
        category=row.category,
        published=bool(row.published),
        annotations=annotations,
    )


__all__ = ["SQLAlchemyMetricStore"]
