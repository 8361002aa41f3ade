"""Event recording with best-effort denormalized counters."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from loguru import logger

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import EntityType, MetricEventRecord, MetricType, as_utc, coerce_metric_type
from marketpulse.observability.rankings import RankingObservabilityStore
from marketpulse.services.curation import CurationRegistry
from marketpulse.services.metrics.schemas import validate_metadata
from marketpulse.store.base import MetricStore

Clock = Callable[[], datetime]

ANONYMOUS_ACTORS = {"", "0"}
SEARCH_SUBJECT_ID = "0"

# Counters bumped on the event's own subject.
_SUBJECT_COUNTERS: dict[MetricType, str] = {
    MetricType.ARTWORK_VIEW: "view_count",
    MetricType.ARTIST_VIEW: "profile_views",
    MetricType.ARTWORK_SALE: "sales_count",
}
_COUNT_ONLY = {
    MetricType.ARTWORK_VIEW,
    MetricType.ARTIST_VIEW,
    MetricType.AI_INTERACTION,
    MetricType.NFT_MINTING,
    MetricType.SEARCH_QUERY,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_id(value: Any, *, label: str) -> str:
    if value is None or isinstance(value, bool):
        raise InvalidArgumentError(f"{label} is required")
    normalized = str(value).strip()
    if not normalized:
        raise InvalidArgumentError(f"{label} is required")
    return normalized


def _normalize_actor(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    normalized = str(value).strip()
    return None if normalized in ANONYMOUS_ACTORS else normalized


def _normalize_value(metric_type: MetricType, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"value must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidArgumentError("value must be finite")
    if metric_type in _COUNT_ONLY and number < 0:
        raise InvalidArgumentError(f"{metric_type.value} value must not be negative")
    return number


class EventRecorder:
    """Append marketplace events and keep running counters in step."""

    def __init__(
        self,
        store: MetricStore,
        *,
        registry: CurationRegistry | None = None,
        observability: RankingObservabilityStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._observability = observability
        self._clock = clock or _utcnow

    async def record(
        self,
        metric_type: MetricType | str,
        subject_id: Any,
        actor_id: Any = None,
        value: Any = 1,
        metadata: Mapping[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> int:
        """Persist one event and return its id.

        Raises :class:`InvalidArgumentError` for malformed input and
        :class:`StorageError` when the append fails. Counter and learning
        signal failures never surface to the caller.
        """

        kind = coerce_metric_type(metric_type)
        record = MetricEventRecord(
            metric_type=kind,
            subject_id=_normalize_id(subject_id, label="subject_id"),
            actor_id=_normalize_actor(actor_id),
            value=_normalize_value(kind, value),
            occurred_at=as_utc(occurred_at) if occurred_at is not None else self._clock(),
            metadata=validate_metadata(kind, dict(metadata) if metadata is not None else None),
        )

        event_id = await self._store.append_event(record)
        stored = replace(record, id=event_id)
        logger.bind(metric_type=kind.value, subject_id=stored.subject_id).debug("Recorded metric event", event_id=event_id)
        if self._observability is not None:
            self._observability.record_event(kind.value)

        await self._update_counters(stored)
        if self._registry is not None:
            await self._registry.notify_event(stored)
        return event_id

    async def _update_counters(self, record: MetricEventRecord) -> None:
        updates: list[tuple[str, str, float]] = []
        counter = _SUBJECT_COUNTERS.get(record.metric_type)
        if counter is not None:
            updates.append((record.subject_id, counter, 1.0))

        if record.metric_type is MetricType.ARTWORK_SALE:
            artist_id = await self._resolve_artist(record)
            if artist_id:
                updates.append((artist_id, "total_sales", 1.0))
                updates.append((artist_id, "total_revenue", record.value))

        for subject_id, counter_name, delta in updates:
            try:
                await self._store.increment_counter(subject_id, counter_name, delta)
            except Exception as exc:
                logger.bind(subject_id=subject_id, counter=counter_name).warning(
                    "Counter update failed; event kept", event_id=record.id, error=str(exc)
                )
                if self._observability is not None:
                    self._observability.record_counter_failure(counter_name)

    async def _resolve_artist(self, record: MetricEventRecord) -> str | None:
        artist_id = record.metadata.get("artist_id")
        if artist_id:
            return str(artist_id)
        try:
            items = await self._store.fetch_items([record.subject_id])
        except Exception as exc:
            logger.bind(subject_id=record.subject_id).warning("Artist lookup failed for sale", error=str(exc))
            if self._observability is not None:
                self._observability.record_counter_failure("total_sales")
            return None
        item = items.get(record.subject_id)
        if item is None or item.item_type is not EntityType.ARTWORK:
            return None
        return item.artist_id

    # Convenience entry points mirroring the marketplace hooks.

    async def track_artwork_view(self, artwork_id: Any, user_id: Any = None) -> int:
        return await self.record(MetricType.ARTWORK_VIEW, artwork_id, user_id)

    async def track_artist_view(self, artist_id: Any, viewer_id: Any = None) -> int:
        return await self.record(MetricType.ARTIST_VIEW, artist_id, viewer_id)

    async def track_artwork_sale(
        self,
        artwork_id: Any,
        seller_id: Any,
        buyer_id: Any,
        amount: float,
        *,
        artist_id: Any = None,
    ) -> int:
        metadata: dict[str, Any] = {"seller_id": seller_id, "transaction_type": "primary_sale"}
        if artist_id is not None:
            metadata["artist_id"] = artist_id
        return await self.record(MetricType.ARTWORK_SALE, artwork_id, buyer_id, amount, metadata)

    async def track_ai_interaction(
        self,
        interaction_type: str,
        interaction_data: Mapping[str, Any] | None = None,
        user_id: Any = None,
    ) -> int:
        data = dict(interaction_data or {})
        subject = data.get("object_id") or SEARCH_SUBJECT_ID
        return await self.record(
            MetricType.AI_INTERACTION,
            subject,
            user_id,
            1,
            {"interaction_type": interaction_type, "interaction_data": data},
        )

    async def track_nft_minting(self, artwork_id: Any, nft_data: Mapping[str, Any] | None = None) -> int:
        data = dict(nft_data or {})
        return await self.record(MetricType.NFT_MINTING, artwork_id, data.get("owner_id"), 1, data)

    async def track_search_query(self, query: str, user_id: Any = None) -> int:
        return await self.record(MetricType.SEARCH_QUERY, SEARCH_SUBJECT_ID, user_id, 1, {"query": query})


__all__ = ["EventRecorder", "SEARCH_SUBJECT_ID"]
