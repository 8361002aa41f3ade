"""Persistence boundary consumed by the recorder, aggregation job and rankings."""

from __future__ import annotations

from datetime import date, datetime
from typing import Mapping, Protocol, Sequence

from marketpulse.domain import (
    DailyAggregateRecord,
    DailyTotal,
    EntityType,
    EventFilter,
    MarketplaceItemRecord,
    MetricEventRecord,
    MetricType,
    SubjectActivity,
)


class MetricStore(Protocol):
    """Durable append + query backend for events, aggregates and catalogue data.

    Implementations raise :class:`marketpulse.core.errors.StorageError` for any
    backend failure.
    """

    async def append_event(self, record: MetricEventRecord) -> int:
        ...

    async def query_events(self, event_filter: EventFilter) -> list[MetricEventRecord]:
        ...

    async def summarize_activity(
        self,
        metric_types: Sequence[MetricType],
        *,
        since: datetime,
        until: datetime | None = None,
        subject_ids: Sequence[str] | None = None,
    ) -> list[SubjectActivity]:
        ...

    async def summarize_days(
        self, metric_type: MetricType, *, since: datetime, until: datetime
    ) -> list[DailyTotal]:
        ...

    async def summarize_window(
        self, metric_type: MetricType, *, since: datetime, until: datetime
    ) -> tuple[int, float]:
        ...

    async def insert_aggregate_if_absent(
        self, metric_type: MetricType, metric_date: date, event_count: int, total_value: float
    ) -> bool:
        ...

    async def get_aggregates(
        self, *, metric_date: date | None = None, metric_type: MetricType | None = None
    ) -> list[DailyAggregateRecord]:
        ...

    async def increment_counter(self, subject_id: str, counter_name: str, delta: float) -> None:
        ...

    async def get_counters(self, subject_id: str) -> dict[str, float]:
        ...

    async def fetch_items(self, item_ids: Sequence[str]) -> dict[str, MarketplaceItemRecord]:
        ...

    async def artworks_by_artist(self, artist_ids: Sequence[str]) -> dict[str, list[MarketplaceItemRecord]]:
        ...

    async def collections_for_artworks(self, artwork_ids: Sequence[str]) -> dict[str, list[str]]:
        ...

    async def collection_members(self, collection_ids: Sequence[str]) -> dict[str, list[str]]:
        ...

    async def upsert_item(self, record: MarketplaceItemRecord) -> None:
        ...

    async def add_collection_member(self, collection_id: str, artwork_id: str) -> None:
        ...


ItemIndex = Mapping[str, MarketplaceItemRecord]


def item_matches(
    item: MarketplaceItemRecord | None,
    entity_type: EntityType,
    category: str | None,
) -> bool:
    """Whether an entity may enter a candidate pool.

    Entities unknown to the catalogue stay eligible unless a category filter is
    requested; unpublished items and id collisions with another type never are.
    """

    if item is None:
        return category is None
    if item.item_type is not entity_type or not item.published:
        return False
    return category is None or item.category == category


__all__ = ["ItemIndex", "MetricStore", "item_matches"]
