"""Resolve the service instance held on application state."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from marketpulse.services.market_metrics import MarketMetricsService


def get_market_service(request: Request) -> MarketMetricsService:
    service = getattr(request.app.state, "market_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Metrics service not initialised",
        )
    return service
