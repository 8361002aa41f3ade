"""Ranking, trending and sales leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from marketpulse.api.dependencies.service import get_market_service
from marketpulse.domain import EntityType, RankingPeriod
from marketpulse.schemas.metrics import CandidateResponse, RankingResponse
from marketpulse.services.market_metrics import MarketMetricsService

router = APIRouter(prefix="/rankings", tags=["Rankings"])


# Fixed paths are registered before the {entity_type} catch-all.
@router.get(
    "/trending/{item_type}",
    response_model=RankingResponse,
    summary="Trending artworks or artists over the last week",
)
async def get_trending(
    item_type: EntityType,
    limit: int = Query(10, ge=0, le=100),
    category: str | None = Query(None),
    timeout: float | None = Query(None, gt=0, description="Seconds before the request fails with 504"),
    service: MarketMetricsService = Depends(get_market_service),
) -> RankingResponse:
    items = await service.get_trending_items(item_type, limit, category, timeout=timeout)
    return RankingResponse(entity_type=item_type, items=[CandidateResponse.from_candidate(item) for item in items])


@router.get(
    "/sales-leaderboard",
    response_model=RankingResponse,
    summary="Artworks ranked by sales revenue",
)
async def get_sales_leaderboard(
    count: int = Query(10, ge=0, le=100),
    category: str | None = Query(None),
    period: RankingPeriod = Query(RankingPeriod.THIRTY_DAYS),
    timeout: float | None = Query(None, gt=0, description="Seconds before the request fails with 504"),
    service: MarketMetricsService = Depends(get_market_service),
) -> RankingResponse:
    items = await service.get_sales_leaderboard(count, category, period, timeout=timeout)
    return RankingResponse(
        entity_type=EntityType.ARTWORK,
        items=[CandidateResponse.from_candidate(item) for item in items],
    )


@router.get(
    "/{entity_type}",
    response_model=RankingResponse,
    summary="Weighted rankings for artworks, artists or collections",
)
async def get_rankings(
    entity_type: EntityType,
    count: int = Query(10, ge=0, le=100),
    category: str | None = Query(None),
    period: RankingPeriod = Query(RankingPeriod.THIRTY_DAYS),
    timeout: float | None = Query(None, gt=0, description="Seconds before the request fails with 504"),
    service: MarketMetricsService = Depends(get_market_service),
) -> RankingResponse:
    items = await service.get_rankings(entity_type, count, category, period, timeout=timeout)
    return RankingResponse(entity_type=entity_type, items=[CandidateResponse.from_candidate(item) for item in items])
