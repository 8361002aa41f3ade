"""In-process cron trigger for the daily aggregation job."""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from marketpulse.jobs.daily_aggregation import run_daily_aggregation
from marketpulse.services.market_metrics import MarketMetricsService

JOB_ID = "daily-metric-aggregation"

JobCallable = Callable[..., Awaitable[Any]]


class DailyAggregationScheduler:
    """Runs the aggregation entrypoint on a cron schedule."""

    # meta: scheduler: metric-aggregation

    def __init__(
        self,
        service: MarketMetricsService,
        *,
        cron: str = "15 0 * * *",
        timezone: str = "UTC",
        job: JobCallable = run_daily_aggregation,
    ) -> None:
        self._service = service
        self._cron = cron
        self._timezone = ZoneInfo(timezone)
        self._job = job
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        if self._scheduler is not None:
            return
        scheduler = AsyncIOScheduler(timezone=self._timezone)
        trigger = CronTrigger.from_crontab(self._cron, timezone=self._timezone)
        scheduler.add_job(self._run, trigger=trigger, id=JOB_ID, replace_existing=True, max_instances=1)
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Metric aggregation scheduler started", job_id=JOB_ID, cron=self._cron)

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        logger.info("Metric aggregation scheduler stopped")

    async def _run(self) -> None:
        started_at = time.perf_counter()
        try:
            summary = await self._job(service=self._service)
        except Exception:
            logger.exception("Scheduled metric aggregation failed", job_id=JOB_ID)
            return
        logger.info(
            "Scheduled metric aggregation finished",
            job_id=JOB_ID,
            metric_date=summary.get("metric_date"),
            runtime_seconds=round(time.perf_counter() - started_at, 3),
        )


__all__ = ["DailyAggregationScheduler", "JOB_ID"]
