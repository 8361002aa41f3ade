"""Catalogue reference data consumed by the ranking engine."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from marketpulse.api.dependencies.service import get_market_service
from marketpulse.schemas.metrics import MarketplaceItemResponse, MarketplaceItemUpsert
from marketpulse.services.market_metrics import MarketMetricsService

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.put("/items/{item_id}", response_model=MarketplaceItemResponse, summary="Register or replace an item")
async def upsert_item(
    item_id: str,
    payload: MarketplaceItemUpsert,
    service: MarketMetricsService = Depends(get_market_service),
) -> MarketplaceItemResponse:
    record = await service.upsert_item(
        item_id,
        payload.item_type,
        artist_id=payload.artist_id,
        curator_id=payload.curator_id,
        category=payload.category,
        published=payload.published,
        annotations=payload.annotations,
    )
    return MarketplaceItemResponse(
        id=record.id,
        item_type=record.item_type,
        artist_id=record.artist_id,
        curator_id=record.curator_id,
        category=record.category,
        published=record.published,
        annotations=dict(record.annotations),
    )


@router.put(
    "/collections/{collection_id}/artworks/{artwork_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Add an artwork to a collection",
)
async def add_collection_member(
    collection_id: str,
    artwork_id: str,
    service: MarketMetricsService = Depends(get_market_service),
) -> None:
    await service.add_collection_member(collection_id, artwork_id)
