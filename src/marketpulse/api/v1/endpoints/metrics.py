"""Bucketed metric series and top-N endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from marketpulse.api.dependencies.service import get_market_service
from marketpulse.domain import BucketPeriod, EntityType, MetricType
from marketpulse.schemas.metrics import CandidateResponse, MetricBucketResponse
from marketpulse.services.market_metrics import MarketMetricsService

router = APIRouter(prefix="/metrics", tags=["Metrics"])


@router.get(
    "/{metric_type}",
    response_model=list[MetricBucketResponse],
    summary="Metric totals grouped by calendar bucket",
)
async def get_metrics(
    metric_type: MetricType,
    period: BucketPeriod = Query(BucketPeriod.DAILY),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    service: MarketMetricsService = Depends(get_market_service),
) -> list[MetricBucketResponse]:
    buckets = await service.get_metrics(metric_type, period, start_date, end_date)
    return [MetricBucketResponse.from_bucket(bucket) for bucket in buckets]


@router.get(
    "/{metric_type}/top",
    response_model=list[CandidateResponse],
    summary="Top subjects for a metric",
)
async def get_top_items(
    metric_type: MetricType,
    item_type: EntityType = Query(EntityType.ARTWORK),
    limit: int = Query(10, ge=0, le=100),
    lookback_days: int = Query(30, ge=0, le=3650),
    service: MarketMetricsService = Depends(get_market_service),
) -> list[CandidateResponse]:
    items = await service.get_top_items(metric_type, item_type, limit, lookback_days)
    return [CandidateResponse.from_candidate(item) for item in items]
