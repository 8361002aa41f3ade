"""In-memory observability snapshot."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from marketpulse.api.dependencies.service import get_market_service
from marketpulse.services.market_metrics import MarketMetricsService

router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get("/rankings", summary="Cache, curation and aggregation counters")
async def get_rankings_snapshot(
    service: MarketMetricsService = Depends(get_market_service),
) -> dict[str, object]:
    snapshot = service.observability.snapshot().as_dict()
    snapshot["query_cache"] = service.cache.stats()
    return snapshot
