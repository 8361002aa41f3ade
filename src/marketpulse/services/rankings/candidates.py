"""Candidate pool retrieval and raw metric assembly per entity class."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from marketpulse.domain import (
    CandidateEntity,
    EntityType,
    MarketplaceItemRecord,
    MetricType,
    SubjectActivity,
)
from marketpulse.services.rankings.scoring import recency_score
from marketpulse.store.base import MetricStore, item_matches

ARTWORK_SIGNALS: tuple[MetricType, ...] = (MetricType.ARTWORK_VIEW, MetricType.ARTWORK_SALE)
ENGAGEMENT_SIGNALS: tuple[MetricType, ...] = ARTWORK_SIGNALS + (MetricType.AI_INTERACTION, MetricType.NFT_MINTING)

# Engagement saturates at 100 events spread across three activity kinds.
_ENGAGEMENT_EVENTS = 100.0
_ENGAGEMENT_KINDS = 3.0


@dataclass(slots=True)
class ActivityTally:
    """Running view/sale totals for one entity within the lookback window."""

    views: int = 0
    sales: int = 0
    revenue: float = 0.0
    engagement_events: int = 0
    engagement_kinds: set[MetricType] = field(default_factory=set)
    last_activity_at: datetime | None = None

    @property
    def activity(self) -> int:
        return self.views + self.sales

    def add(self, row: SubjectActivity) -> None:
        self.engagement_events += row.event_count
        self.engagement_kinds.add(row.metric_type)
        if row.metric_type is MetricType.ARTWORK_VIEW:
            self.views += row.event_count
        elif row.metric_type is MetricType.ARTWORK_SALE:
            self.sales += row.event_count
            self.revenue += row.total_value
        else:
            return
        if self.last_activity_at is None or row.last_occurred_at > self.last_activity_at:
            self.last_activity_at = row.last_occurred_at

    def merge(self, other: "ActivityTally") -> None:
        self.views += other.views
        self.sales += other.sales
        self.revenue += other.revenue
        self.engagement_events += other.engagement_events
        self.engagement_kinds |= other.engagement_kinds
        if other.last_activity_at is not None and (
            self.last_activity_at is None or other.last_activity_at > self.last_activity_at
        ):
            self.last_activity_at = other.last_activity_at


def fold_activity(rows: Iterable[SubjectActivity]) -> dict[str, ActivityTally]:
    tallies: dict[str, ActivityTally] = defaultdict(ActivityTally)
    for row in rows:
        tallies[row.subject_id].add(row)
    return dict(tallies)


def select_pool(tallies: Mapping[str, ActivityTally], eligible: Iterable[str], pool_size: int) -> list[str]:
    """Most active first, then most recent, then id; view/sale activity required."""

    ranked = sorted(
        (subject_id for subject_id in eligible if tallies[subject_id].activity > 0),
        key=lambda subject_id: (
            -tallies[subject_id].activity,
            -(tallies[subject_id].last_activity_at.timestamp() if tallies[subject_id].last_activity_at else 0.0),
            subject_id,
        ),
    )
    return ranked[:pool_size]


def _annotation(item: MarketplaceItemRecord | None, key: str) -> float:
    if item is None:
        return 0.0
    return float(item.annotations.get(key, 0.0))


def _engagement(tally: ActivityTally) -> float:
    if tally.engagement_events <= 0:
        return 0.0
    return min(1.0, (tally.engagement_events / _ENGAGEMENT_EVENTS) * (len(tally.engagement_kinds) / _ENGAGEMENT_KINDS))


class CandidateAssembler:
    """Builds unscored candidate pools from the event log and catalogue."""

    def __init__(self, store: MetricStore) -> None:
        self._store = store

    async def artworks(
        self,
        *,
        since: datetime,
        now: datetime,
        lookback_days: int,
        category: str | None,
        pool_size: int,
    ) -> list[CandidateEntity]:
        tallies = fold_activity(await self._store.summarize_activity(ARTWORK_SIGNALS, since=since))
        if not tallies:
            return []
        items = await self._store.fetch_items(list(tallies))
        eligible = [subject for subject in tallies if item_matches(items.get(subject), EntityType.ARTWORK, category)]

        candidates: list[CandidateEntity] = []
        for artwork_id in select_pool(tallies, eligible, pool_size):
            tally = tallies[artwork_id]
            item = items.get(artwork_id)
            candidates.append(
                CandidateEntity(
                    id=artwork_id,
                    raw_metrics={
                        "views": float(tally.views),
                        "sales": float(tally.sales),
                        "revenue": tally.revenue,
                        "quality": _annotation(item, "quality"),
                        "artistic_innovation": _annotation(item, "artistic_innovation"),
                        "engagement": _annotation(item, "engagement"),
                        "recency": recency_score(tally.last_activity_at, now, lookback_days),
                    },
                    computed_score=0.0,
                    last_activity_at=tally.last_activity_at,
                    annotations=_item_annotations(item),
                )
            )
        return candidates

    async def artists(
        self,
        *,
        since: datetime,
        now: datetime,
        lookback_days: int,
        category: str | None,
        pool_size: int,
    ) -> list[CandidateEntity]:
        artwork_tallies = fold_activity(await self._store.summarize_activity(ENGAGEMENT_SIGNALS, since=since))
        if not artwork_tallies:
            return []
        artworks = await self._store.fetch_items(list(artwork_tallies))

        tallies: dict[str, ActivityTally] = defaultdict(ActivityTally)
        for artwork_id, tally in artwork_tallies.items():
            artwork = artworks.get(artwork_id)
            if artwork is None or not artwork.artist_id:
                continue
            if not item_matches(artwork, EntityType.ARTWORK, category):
                continue
            tallies[artwork.artist_id].merge(tally)
        if not tallies:
            return []

        artist_items = await self._store.fetch_items(list(tallies))
        eligible = [artist for artist in tallies if item_matches(artist_items.get(artist), EntityType.ARTIST, None)]
        pool = select_pool(tallies, eligible, pool_size)
        portfolios = await self._store.artworks_by_artist(pool)

        candidates: list[CandidateEntity] = []
        for artist_id in pool:
            tally = tallies[artist_id]
            portfolio = [
                artwork
                for artwork in portfolios.get(artist_id, [])
                if category is None or artwork.category == category
            ]
            qualities = [artwork.annotations["quality"] for artwork in portfolio if "quality" in artwork.annotations]
            artist_item = artist_items.get(artist_id)
            candidates.append(
                CandidateEntity(
                    id=artist_id,
                    raw_metrics={
                        "artwork_count": float(len(portfolio)),
                        "total_views": float(tally.views),
                        "total_sales": float(tally.sales),
                        "total_revenue": tally.revenue,
                        "avg_artwork_quality": sum(qualities) / len(qualities) if qualities else 0.0,
                        "artistic_growth": _annotation(artist_item, "artistic_growth"),
                        "marketplace_engagement": _engagement(tally),
                        "recency": recency_score(tally.last_activity_at, now, lookback_days),
                    },
                    computed_score=0.0,
                    last_activity_at=tally.last_activity_at,
                    annotations=_item_annotations(artist_item),
                )
            )
        return candidates

    async def collections(
        self,
        *,
        since: datetime,
        now: datetime,
        lookback_days: int,
        category: str | None,
        pool_size: int,
    ) -> list[CandidateEntity]:
        artwork_tallies = fold_activity(await self._store.summarize_activity(ARTWORK_SIGNALS, since=since))
        if not artwork_tallies:
            return []
        memberships = await self._store.collections_for_artworks(list(artwork_tallies))
        collection_ids = sorted({cid for cids in memberships.values() for cid in cids})
        if not collection_ids:
            return []
        items = await self._store.fetch_items([*artwork_tallies, *collection_ids])

        tallies: dict[str, ActivityTally] = defaultdict(ActivityTally)
        for artwork_id, cids in memberships.items():
            if not item_matches(items.get(artwork_id), EntityType.ARTWORK, None):
                continue
            for collection_id in cids:
                tallies[collection_id].merge(artwork_tallies[artwork_id])

        eligible = [cid for cid in tallies if item_matches(items.get(cid), EntityType.COLLECTION, category)]
        pool = select_pool(tallies, eligible, pool_size)
        members = await self._store.collection_members(pool)
        member_items = await self._store.fetch_items(sorted({aid for aids in members.values() for aid in aids}))

        candidates: list[CandidateEntity] = []
        for collection_id in pool:
            tally = tallies[collection_id]
            member_ids = members.get(collection_id, [])
            artists = {
                member_items[aid].artist_id
                for aid in member_ids
                if aid in member_items and member_items[aid].artist_id
            }
            collection_item = items.get(collection_id)
            candidates.append(
                CandidateEntity(
                    id=collection_id,
                    raw_metrics={
                        "artwork_count": float(len(member_ids)),
                        "collection_views": float(tally.views),
                        "total_sales": float(tally.sales),
                        "collection_cohesion": _annotation(collection_item, "collection_cohesion"),
                        "artistic_diversity": len(artists) / len(member_ids) if member_ids else 0.0,
                        "curator_reputation": _annotation(collection_item, "curator_reputation"),
                        "recency": recency_score(tally.last_activity_at, now, lookback_days),
                    },
                    computed_score=0.0,
                    last_activity_at=tally.last_activity_at,
                    annotations=_item_annotations(collection_item),
                )
            )
        return candidates

    async def sales(
        self,
        *,
        since: datetime,
        now: datetime,
        lookback_days: int,
        category: str | None,
        pool_size: int,
    ) -> list[CandidateEntity]:
        """Artworks with at least one sale in the window, highest revenue first."""

        tallies = fold_activity(await self._store.summarize_activity(ARTWORK_SIGNALS, since=since))
        sold = [subject for subject, tally in tallies.items() if tally.sales > 0]
        if not sold:
            return []
        items = await self._store.fetch_items(sold)
        eligible = [subject for subject in sold if item_matches(items.get(subject), EntityType.ARTWORK, category)]
        eligible.sort(key=lambda subject: sales_order_key(subject, tallies[subject]))

        candidates: list[CandidateEntity] = []
        for artwork_id in eligible[:pool_size]:
            tally = tallies[artwork_id]
            item = items.get(artwork_id)
            candidates.append(
                CandidateEntity(
                    id=artwork_id,
                    raw_metrics={
                        "views": float(tally.views),
                        "sales": float(tally.sales),
                        "revenue": tally.revenue,
                        "quality": _annotation(item, "quality"),
                        "recency": recency_score(tally.last_activity_at, now, lookback_days),
                    },
                    computed_score=max(0.0, tally.revenue),
                    last_activity_at=tally.last_activity_at,
                    annotations=_item_annotations(item),
                )
            )
        return candidates

    async def activity_counts(
        self,
        metric_type: MetricType,
        entity_type: EntityType,
        *,
        since: datetime,
        category: str | None,
        pool_size: int,
    ) -> list[CandidateEntity]:
        """Candidates scored by raw event count of one metric type."""

        rows = await self._store.summarize_activity([metric_type], since=since)
        if not rows:
            return []
        items = await self._store.fetch_items([row.subject_id for row in rows])
        candidates = [
            CandidateEntity(
                id=row.subject_id,
                raw_metrics={"activity_count": float(row.event_count)},
                computed_score=float(row.event_count),
                last_activity_at=row.last_occurred_at,
                annotations=_item_annotations(items.get(row.subject_id)),
            )
            for row in rows
            if item_matches(items.get(row.subject_id), entity_type, category)
        ]
        candidates.sort(
            key=lambda candidate: (-candidate.computed_score, -candidate.last_activity_at.timestamp(), candidate.id)
        )
        return candidates[:pool_size]


def sales_order_key(subject_id: str, tally: ActivityTally) -> tuple[float, int, float, str]:
    last = tally.last_activity_at.timestamp() if tally.last_activity_at else 0.0
    # Refunds can push revenue below zero; such artworks tie at the bottom.
    return (-max(0.0, tally.revenue), -tally.sales, -last, subject_id)


def _item_annotations(item: MarketplaceItemRecord | None) -> dict[str, float]:
    return dict(item.annotations) if item is not None else {}


__all__ = [
    "ARTWORK_SIGNALS",
    "ActivityTally",
    "CandidateAssembler",
    "ENGAGEMENT_SIGNALS",
    "fold_activity",
    "sales_order_key",
    "select_pool",
]
