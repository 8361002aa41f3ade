"""Job entrypoint for the daily metric aggregation."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketpulse.services.market_metrics import MarketMetricsService, build_service


async def run_daily_aggregation(
    *,
    service: MarketMetricsService | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    metric_date: date | None = None,
) -> Dict[str, Any]:
    """Aggregate ``metric_date`` (yesterday, UTC, when omitted) and return the report."""

    local_service = service or build_service(session_factory=session_factory)
    report = await local_service.run_daily_aggregation(metric_date)
    summary = report.as_dict()
    if report.succeeded:
        logger.bind(summary=summary).info("Daily metric aggregation job completed")
    else:
        logger.bind(summary=summary).warning("Daily metric aggregation job completed with errors")
    return summary


__all__ = ["run_daily_aggregation"]
