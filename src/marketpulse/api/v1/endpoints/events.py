"""Event ingestion endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from marketpulse.api.dependencies.service import get_market_service
from marketpulse.schemas.metrics import MetricEventCreate, MetricEventCreated
from marketpulse.services.market_metrics import MarketMetricsService

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=MetricEventCreated,
    summary="Record a marketplace event",
)
async def record_event(
    payload: MetricEventCreate,
    service: MarketMetricsService = Depends(get_market_service),
) -> MetricEventCreated:
    event_id = await service.record_event(
        payload.metric_type,
        payload.subject_id,
        payload.actor_id,
        payload.value,
        payload.metadata,
        payload.occurred_at,
    )
    return MetricEventCreated(event_id=event_id, metric_type=payload.metric_type)
