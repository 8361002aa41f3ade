from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from marketpulse.core.errors import InvalidArgumentError, OperationTimeoutError
from marketpulse.domain import EntityType
from marketpulse.services.curation import CurationRegistry
from marketpulse.services.market_metrics import build_service

from conftest import NOW, CountingStore, make_settings
from marketpulse.store.sqlalchemy import SQLAlchemyMetricStore


class ReversingAdapter:
    name = "reversing"

    def __init__(self, *, extra_ids: tuple[str, ...] = ()) -> None:
        self.extra_ids = extra_ids
        self.seen: list[list[str]] = []

    async def curate(self, entity_type, candidates, context):
        self.seen.append([candidate.id for candidate in candidates])
        return [*self.extra_ids, *reversed([candidate.id for candidate in candidates])]

    async def observe_event(self, record) -> None:
        return None

    async def observe_daily_summary(self, metric_date, summary) -> None:
        return None


class FailingAdapter(ReversingAdapter):
    name = "failing"

    async def curate(self, entity_type, candidates, context):
        raise RuntimeError("curation backend unavailable")


class EmptyAdapter(ReversingAdapter):
    name = "empty"

    async def curate(self, entity_type, candidates, context):
        return []


class SlowAdapter(ReversingAdapter):
    name = "slow"

    async def curate(self, entity_type, candidates, context):
        await asyncio.sleep(5)
        return list(candidates)


async def _views(service, subject_id: str, count: int, *, hours_ago: float = 1.0) -> None:
    for _ in range(count):
        await service.record_event("artwork_view", subject_id, occurred_at=NOW - timedelta(hours=hours_ago))


async def _sale(service, subject_id: str, amount: float, *, hours_ago: float = 1.0) -> None:
    await service.record_event(
        "artwork_sale", subject_id, "buyer", amount, {"seller_id": "s"}, NOW - timedelta(hours=hours_ago)
    )


async def _seed_catalog(service) -> None:
    await service.upsert_item("A1", "artwork", artist_id="R1", category="painting", annotations={"quality": 0.9})
    await service.upsert_item("A2", "artwork", artist_id="R2", category="painting", annotations={"quality": 0.4})
    await service.upsert_item("A3", "artwork", artist_id="R1", category="sculpture", annotations={"quality": 0.7})
    await service.upsert_item("A4", "artwork", artist_id="R2", category="painting", published=False)
    await service.upsert_item("C1", "collection", curator_id="K1", annotations={"curator_reputation": 0.8})
    await service.upsert_item("C2", "collection", curator_id="K2", annotations={"curator_reputation": 0.2})
    await service.add_collection_member("C1", "A1")
    await service.add_collection_member("C1", "A2")
    await service.add_collection_member("C2", "A3")


async def _seed_activity(service) -> None:
    await _views(service, "A1", 10)
    await _views(service, "A2", 3, hours_ago=2)
    await _views(service, "A3", 5, hours_ago=30)
    await _views(service, "A4", 50)
    await _sale(service, "A1", 500.0)
    await _sale(service, "A3", 200.0, hours_ago=40)
    await _sale(service, "A3", 100.0, hours_ago=50)


def _ids(items) -> list[str]:
    return [item.id for item in items]


def _service(session_factory, clock, registry=None, **overrides):
    store = CountingStore(SQLAlchemyMetricStore(session_factory))
    return build_service(make_settings(**overrides), store=store, clock=clock, registry=registry)


@pytest.mark.asyncio
async def test_artwork_rankings_score_rank_and_exclude_unpublished(service):
    await _seed_catalog(service)
    await _seed_activity(service)

    ranked = await service.get_rankings("artwork", 10)

    assert _ids(ranked) == ["A1", "A3", "A2"]
    assert [item.rank for item in ranked] == [1, 2, 3]
    assert ranked[0].computed_score >= ranked[1].computed_score >= ranked[2].computed_score
    assert ranked[0].raw_metrics["views"] == 10.0
    assert ranked[0].raw_metrics["revenue"] == 500.0
    assert ranked[0].raw_metrics["quality"] == 0.9
    assert ranked[0].annotations == {"quality": 0.9}


@pytest.mark.asyncio
async def test_count_truncates_and_zero_returns_empty(service):
    await _seed_catalog(service)
    await _seed_activity(service)

    assert _ids(await service.get_rankings("artwork", 1)) == ["A1"]
    assert await service.get_rankings("artwork", 0) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("entity_type", "count", "period"),
    [("gallery", 10, "30days"), ("artwork", -1, "30days"), ("artwork", 10, "1year"), ("artwork", "10", "7days")],
)
async def test_invalid_arguments_are_rejected(service, entity_type, count, period):
    with pytest.raises(InvalidArgumentError):
        await service.get_rankings(entity_type, count, None, period)


@pytest.mark.asyncio
async def test_repeated_calls_are_served_from_cache(service, counting_store):
    await _seed_catalog(service)
    await _seed_activity(service)

    first = await service.get_rankings("artwork", 5)
    scans = counting_store.calls["summarize_activity"]
    second = await service.get_rankings("artwork", 5)

    assert second == first
    assert counting_store.calls["summarize_activity"] == scans


@pytest.mark.asyncio
async def test_concurrent_identical_calls_compute_once(service, counting_store):
    await _seed_catalog(service)
    await _seed_activity(service)

    results = await asyncio.gather(*(service.get_rankings("artwork", 5, "painting") for _ in range(4)))

    assert counting_store.calls["summarize_activity"] == 1
    assert all(result == results[0] for result in results)
    assert service.cache.stats()["computations"] == 1


@pytest.mark.asyncio
async def test_cache_expires_after_ttl(service, counting_store, clock):
    await _seed_catalog(service)
    await _seed_activity(service)

    await service.get_rankings("artwork", 5)
    clock.advance(minutes=59)
    await service.get_rankings("artwork", 5)
    assert counting_store.calls["summarize_activity"] == 1

    clock.advance(minutes=2)
    await service.get_rankings("artwork", 5)
    assert counting_store.calls["summarize_activity"] == 2


@pytest.mark.asyncio
async def test_recomputation_over_unchanged_data_is_deterministic(service):
    await _seed_catalog(service)
    await _seed_activity(service)

    first = await service.get_rankings("artwork", 10)
    service.cache.clear()
    second = await service.get_rankings("artwork", 10)

    assert [(item.id, item.computed_score, item.rank) for item in first] == [
        (item.id, item.computed_score, item.rank) for item in second
    ]


@pytest.mark.asyncio
async def test_category_filter_requires_catalogue_match(service):
    await _seed_catalog(service)
    await _seed_activity(service)
    await _views(service, "UNLISTED", 20)

    unfiltered = await service.get_rankings("artwork", 10)
    paintings = await service.get_rankings("artwork", 10, "painting")

    assert "UNLISTED" in _ids(unfiltered)
    assert _ids(paintings) == ["A1", "A2"]


@pytest.mark.asyncio
async def test_period_bounds_the_candidate_pool(service, clock):
    await _seed_catalog(service)
    await _views(service, "A1", 2, hours_ago=24 * 10)
    await _views(service, "A2", 1)

    assert _ids(await service.get_rankings("artwork", 10, None, "7days")) == ["A2"]
    assert _ids(await service.get_rankings("artwork", 10, None, "30days")) == ["A1", "A2"]


@pytest.mark.asyncio
async def test_artist_rankings_roll_up_artwork_activity(service):
    await _seed_catalog(service)
    await _seed_activity(service)
    await service.record_event("ai_interaction", "A1", None, 1, {"interaction_type": "style_match"})

    ranked = await service.get_rankings("artist", 10)

    assert _ids(ranked) == ["R1", "R2"]
    r1 = ranked[0].raw_metrics
    assert r1["artwork_count"] == 2.0
    assert r1["total_views"] == 15.0
    assert r1["total_sales"] == 3.0
    assert r1["total_revenue"] == 800.0
    assert r1["avg_artwork_quality"] == pytest.approx(0.8)
    assert 0.0 < r1["marketplace_engagement"] <= 1.0
    # A4 is unpublished, so R2 only counts A2.
    assert ranked[1].raw_metrics["total_views"] == 3.0

    sculptors = await service.get_rankings("artist", 10, "sculpture")
    assert _ids(sculptors) == ["R1"]
    assert sculptors[0].raw_metrics["artwork_count"] == 1.0
    assert sculptors[0].raw_metrics["total_views"] == 5.0


@pytest.mark.asyncio
async def test_collection_rankings_use_member_activity(service):
    await _seed_catalog(service)
    await _seed_activity(service)

    ranked = await service.get_rankings("collection", 10)

    assert _ids(ranked) == ["C1", "C2"]
    c1 = ranked[0].raw_metrics
    assert c1["artwork_count"] == 2.0
    assert c1["collection_views"] == 13.0
    assert c1["total_sales"] == 1.0
    assert c1["artistic_diversity"] == 1.0
    assert c1["curator_reputation"] == 0.8
    assert ranked[1].raw_metrics["total_sales"] == 2.0


@pytest.mark.asyncio
async def test_sales_leaderboard_orders_by_revenue(service):
    await _seed_catalog(service)
    await _seed_activity(service)

    board = await service.get_sales_leaderboard(10)

    assert _ids(board) == ["A1", "A3"]
    assert [item.computed_score for item in board] == [500.0, 300.0]
    assert board[1].raw_metrics["sales"] == 2.0
    assert _ids(await service.get_sales_leaderboard(10, "painting")) == ["A1"]


@pytest.mark.asyncio
async def test_sales_leaderboard_clamps_refunded_revenue_at_zero(service):
    await _seed_catalog(service)
    await _seed_activity(service)
    await _sale(service, "A2", 100.0, hours_ago=3)
    await _sale(service, "A2", -300.0, hours_ago=2)

    board = await service.get_sales_leaderboard(10)

    assert _ids(board) == ["A1", "A3", "A2"]
    assert [item.computed_score for item in board] == [500.0, 300.0, 0.0]
    assert board[2].raw_metrics["revenue"] == -200.0


@pytest.mark.asyncio
async def test_cached_rankings_cannot_be_mutated_by_callers(service, counting_store):
    await _seed_catalog(service)
    await _seed_activity(service)

    first = await service.get_rankings("artwork", 10)
    with pytest.raises(TypeError):
        first[0].raw_metrics["views"] = -999.0
    with pytest.raises(TypeError):
        first[0].annotations["quality"] = 0.0
    first.reverse()

    second = await service.get_rankings("artwork", 10)

    assert _ids(second) == ["A1", "A3", "A2"]
    assert second[0].raw_metrics["views"] == 10.0
    assert second[0].annotations == {"quality": 0.9}
    assert counting_store.calls["summarize_activity"] == 1


@pytest.mark.asyncio
async def test_curation_reorders_and_drops_foreign_ids(session_factory, clock):
    adapter = ReversingAdapter(extra_ids=("GHOST",))
    registry = CurationRegistry()
    registry.route(adapter, operation="rankings", entity_type=EntityType.ARTWORK)
    service = _service(session_factory, clock, registry=registry)
    await _seed_catalog(service)
    await _seed_activity(service)

    ranked = await service.get_rankings("artwork", 10)

    assert _ids(ranked) == ["A2", "A3", "A1"]
    assert [item.rank for item in ranked] == [1, 2, 3]
    assert adapter.seen == [["A1", "A3", "A2"]]
    curation = service.observability.snapshot().curation["reversing"]
    assert curation == {"runs": 1, "foreign_ids_dropped": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", [FailingAdapter, EmptyAdapter])
async def test_curation_failure_falls_back_to_engine_order(session_factory, clock, adapter_cls):
    adapter = adapter_cls()
    registry = CurationRegistry(default=adapter)
    service = _service(session_factory, clock, registry=registry)
    await _seed_catalog(service)
    await _seed_activity(service)

    ranked = await service.get_rankings("artwork", 10)

    assert _ids(ranked) == ["A1", "A3", "A2"]
    assert service.observability.snapshot().curation[adapter.name]["fallbacks"] == 1


@pytest.mark.asyncio
async def test_rankings_honour_timeout(session_factory, clock):
    service = _service(session_factory, clock, registry=CurationRegistry(default=SlowAdapter()))
    await _seed_catalog(service)
    await _seed_activity(service)

    with pytest.raises(OperationTimeoutError) as excinfo:
        await service.get_rankings("artwork", 10, timeout=0.05)

    assert excinfo.value.operation == "rankings"
    snapshot = service.observability.snapshot()
    assert snapshot.timeouts == {"rankings": 1}
    assert snapshot.requests == {"rankings": 1}
    assert service.cache.stats()["entries"] == 0


@pytest.mark.asyncio
async def test_configured_weights_change_the_order(session_factory, clock):
    service = _service(
        session_factory,
        clock,
        ranking_weights={
            "artwork": {
                "views": 0,
                "sales": 100,
                "revenue": 0,
                "quality": 0,
                "artistic_innovation": 0,
                "engagement": 0,
                "recency": 0,
            }
        },
    )
    await _seed_catalog(service)
    await _seed_activity(service)

    ranked = await service.get_rankings("artwork", 10)

    assert _ids(ranked) == ["A3", "A1", "A2"]
    assert [item.computed_score for item in ranked] == [1.0, 0.5, 0.0]
