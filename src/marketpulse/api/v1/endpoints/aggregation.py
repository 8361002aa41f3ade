"""Manual trigger for the daily aggregation job."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from marketpulse.api.dependencies.service import get_market_service
from marketpulse.jobs.daily_aggregation import run_daily_aggregation
from marketpulse.schemas.metrics import AggregationRequest
from marketpulse.services.market_metrics import MarketMetricsService

router = APIRouter(prefix="/aggregation", tags=["Aggregation"])


@router.post("/run", summary="Aggregate one day of events")
async def run_aggregation(
    payload: AggregationRequest | None = None,
    service: MarketMetricsService = Depends(get_market_service),
) -> dict[str, Any]:
    """Idempotent: re-running a day that is already aggregated reports ``already_aggregated``."""

    metric_date = payload.metric_date if payload is not None else None
    return await run_daily_aggregation(service=service, metric_date=metric_date)
