from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import BucketPeriod, DailyTotal, MetricType
from marketpulse.services.metrics.queries import default_start
from marketpulse.store.sqlalchemy import SQLAlchemyMetricStore

from conftest import NOW


async def _record(service, metric_type: str, subject_id: str, when: datetime, value: float = 1, metadata=None) -> None:
    await service.record_event(metric_type, subject_id, None, value, metadata, when)


@pytest.mark.asyncio
async def test_top_items_orders_by_event_volume(service):
    for _ in range(10):
        await _record(service, "artwork_view", "A1", NOW - timedelta(hours=3))
    for _ in range(3):
        await _record(service, "artwork_view", "A2", NOW - timedelta(hours=5))

    top = await service.get_top_items("artwork_view", "artwork", 5, 7)

    assert [item.id for item in top] == ["A1", "A2"]
    assert top[0].raw_metrics == {"count": 10.0, "total_value": 10.0}
    assert [item.rank for item in top] == [1, 2]


@pytest.mark.asyncio
async def test_top_items_ranks_sales_by_revenue_and_rolls_up_artists(service):
    await service.upsert_item("A1", "artwork", artist_id="R1")
    await service.upsert_item("A2", "artwork", artist_id="R2")
    await service.upsert_item("A3", "artwork", artist_id="R1")
    await _record(service, "artwork_sale", "A1", NOW - timedelta(days=1), 100.0)
    await _record(service, "artwork_sale", "A1", NOW - timedelta(days=1), 100.0)
    await _record(service, "artwork_sale", "A2", NOW - timedelta(days=2), 500.0)
    await _record(service, "artwork_sale", "A3", NOW - timedelta(days=3), 350.0)
    await _record(service, "artwork_sale", "A2", NOW - timedelta(days=40), 9000.0)

    artworks = await service.get_top_items("artwork_sale", "artwork", 10, 30)
    artists = await service.get_top_items("artwork_sale", "artist", 10, 30)

    assert [item.id for item in artworks] == ["A2", "A3", "A1"]
    assert [item.computed_score for item in artworks] == [500.0, 350.0, 200.0]
    assert [item.id for item in artists] == ["R1", "R2"]
    assert artists[0].raw_metrics == {"count": 3.0, "total_value": 550.0}


@pytest.mark.asyncio
async def test_top_items_limits_and_validation(service):
    await _record(service, "artwork_view", "A1", NOW)
    await _record(service, "artwork_view", "A2", NOW)

    assert len(await service.get_top_items("artwork_view", "artwork", 1, 7)) == 1
    assert await service.get_top_items("artwork_view", "artwork", 0, 7) == []
    with pytest.raises(InvalidArgumentError):
        await service.get_top_items("artwork_view", "artwork", -1, 7)
    with pytest.raises(InvalidArgumentError):
        await service.get_top_items("page_view", "artwork", 5, 7)


@pytest.mark.asyncio
async def test_refunds_never_push_top_sale_scores_below_zero(service):
    await _record(service, "artwork_sale", "A1", NOW - timedelta(hours=2), 100.0)
    await _record(service, "artwork_sale", "A1", NOW - timedelta(hours=1), -300.0, {"transaction_type": "refund"})
    await _record(service, "artwork_sale", "A2", NOW - timedelta(hours=1), 50.0)

    top = await service.get_top_items("artwork_sale", "artwork", 5, 7)

    assert [item.id for item in top] == ["A2", "A1"]
    assert [item.computed_score for item in top] == [50.0, 0.0]
    assert top[1].raw_metrics == {"count": 2.0, "total_value": -200.0}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("metric_type", "item_type"),
    [
        ("artwork_view", "collection"),
        ("artwork_sale", "collection"),
        ("artist_view", "artwork"),
        ("search_query", "artwork"),
    ],
)
async def test_top_items_reject_metric_and_item_type_mismatches(service, metric_type, item_type):
    with pytest.raises(InvalidArgumentError):
        await service.get_top_items(metric_type, item_type, 5, 7)


@pytest.mark.asyncio
async def test_top_artists_from_artist_views(service):
    await _record(service, "artist_view", "R1", NOW)
    await _record(service, "artist_view", "R1", NOW)
    await _record(service, "artist_view", "R2", NOW)

    top = await service.get_top_items("artist_view", "artist", 5, 7)

    assert [item.id for item in top] == ["R1", "R2"]


@pytest.mark.asyncio
async def test_daily_buckets_cover_an_inclusive_date_range(service):
    await _record(service, "artwork_sale", "A1", datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc), 100.0)
    await _record(service, "artwork_sale", "A2", datetime(2024, 3, 1, 23, 59, tzinfo=timezone.utc), 50.0)
    await _record(service, "artwork_sale", "A3", datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc), 25.0)
    await _record(service, "artwork_sale", "A3", datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc), 999.0)

    buckets = await service.get_sales_metrics("daily", "2024-03-01", date(2024, 3, 3))

    assert [bucket.as_dict() for bucket in buckets] == [
        {"period_bucket": "2024-03-01", "total_value": 150.0, "count": 2},
        {"period_bucket": "2024-03-03", "total_value": 25.0, "count": 1},
    ]


@pytest.mark.asyncio
async def test_weekly_monthly_and_yearly_labels(service):
    await _record(service, "artwork_view", "A1", datetime(2023, 12, 31, 10, tzinfo=timezone.utc))
    await _record(service, "artwork_view", "A1", datetime(2024, 1, 2, 10, tzinfo=timezone.utc))
    await _record(service, "artwork_view", "A1", datetime(2024, 2, 20, 10, tzinfo=timezone.utc))

    weekly = await service.get_view_metrics("artwork_view", "weekly", "2023-12-01", "2024-03-01")
    monthly = await service.get_metrics("artwork_view", BucketPeriod.MONTHLY, "2023-12-01", "2024-03-01")
    yearly = await service.get_metrics("artwork_view", "yearly", "2023-01-01", "2024-03-01")

    assert [(bucket.period_bucket, bucket.count) for bucket in weekly] == [("2023-52", 1), ("2024-01", 1), ("2024-08", 1)]
    assert [bucket.period_bucket for bucket in monthly] == ["2023-12", "2024-01", "2024-02"]
    assert [(bucket.period_bucket, bucket.count) for bucket in yearly] == [("2023", 1), ("2024", 2)]


@pytest.mark.asyncio
async def test_default_range_ends_today(service):
    await _record(service, "artist_view", "R1", NOW - timedelta(days=3))
    await _record(service, "artist_view", "R1", NOW - timedelta(days=30))

    buckets = await service.get_view_metrics("artist_view")

    assert [bucket.period_bucket for bucket in buckets] == ["2024-03-12"]


@pytest.mark.asyncio
async def test_metric_query_validation(service):
    with pytest.raises(InvalidArgumentError):
        await service.get_metrics("artwork_view", "hourly")
    with pytest.raises(InvalidArgumentError):
        await service.get_metrics("artwork_view", "daily", "2024-03-10", "2024-03-01")
    with pytest.raises(InvalidArgumentError):
        await service.get_metrics("artwork_view", "daily", "03/01/2024")
    with pytest.raises(InvalidArgumentError):
        await service.get_view_metrics("artwork_sale")


@pytest.mark.asyncio
async def test_metric_queries_are_cached(service, counting_store):
    await _record(service, "artwork_view", "A1", NOW)

    await service.get_metrics("artwork_view", "daily", "2024-03-01", "2024-03-15")
    await service.get_metrics("artwork_view", "daily", "2024-03-01", "2024-03-15")

    assert counting_store.calls["summarize_days"] == 1
    assert "query_events" not in counting_store.calls


def test_default_start_per_bucket_period():
    end = date(2024, 8, 31)

    assert default_start(BucketPeriod.DAILY, end) == date(2024, 8, 24)
    assert default_start(BucketPeriod.WEEKLY, end) == date(2024, 7, 6)
    assert default_start(BucketPeriod.MONTHLY, end) == date(2024, 2, 29)
    assert default_start(BucketPeriod.YEARLY, end) == date(2022, 8, 31)


@pytest.mark.asyncio
async def test_store_groups_events_per_utc_day(session_factory, service):
    await _record(service, "artwork_sale", "A1", datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc), 10.0)
    await _record(service, "artwork_sale", "A2", datetime(2024, 3, 1, 23, 59, tzinfo=timezone.utc), 30.0)
    await _record(service, "artwork_sale", "A1", datetime(2024, 3, 3, 8, 0, tzinfo=timezone.utc), 5.0)
    await _record(service, "artwork_sale", "A1", datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc), 99.0)
    await _record(service, "artwork_view", "A1", datetime(2024, 3, 2, 8, 0, tzinfo=timezone.utc))

    days = await SQLAlchemyMetricStore(session_factory).summarize_days(
        MetricType.ARTWORK_SALE,
        since=datetime(2024, 3, 1, tzinfo=timezone.utc),
        until=datetime(2024, 3, 4, tzinfo=timezone.utc),
    )

    assert days == [
        DailyTotal(day=date(2024, 3, 1), event_count=2, total_value=40.0),
        DailyTotal(day=date(2024, 3, 3), event_count=1, total_value=5.0),
    ]
