"""In-process tick source for the monitoring scheduler and order processor.

Deployments with an external cron can disable this (``SCHEDULER_ENABLED=false``)
and call ``POST /api/v1/monitoring/tick`` instead.
"""

from datetime import UTC, datetime

import structlog
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chargeguard.domains.monitoring.scheduler import MonitoringScheduler
from chargeguard.domains.orders.processor import OrderProcessor

logger = structlog.get_logger()


def _quarter_hour_start(now: datetime, tick_minutes: int) -> datetime:
    aligned = now.minute - now.minute % tick_minutes
    return now.replace(minute=aligned, second=5, microsecond=0)


class BackgroundTicker:
    """Fires ``MonitoringScheduler.tick`` and ``OrderProcessor.process_batch`` on intervals."""

    def __init__(
        self,
        scheduler: MonitoringScheduler,
        processor: OrderProcessor,
        tick_minutes: int = 15,
        processing_interval_seconds: int = 60,
        batch_size: int = 10,
    ) -> None:
        self._monitoring = scheduler
        self._processor = processor
        self._tick_minutes = tick_minutes
        self._processing_interval_seconds = processing_interval_seconds
        self._batch_size = batch_size
        self.scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 120,
            },
            timezone="UTC",
        )

    async def run_monitoring_tick(self) -> None:
        try:
            await self._monitoring.tick()
        except Exception:
            logger.exception("monitoring_tick_job_failed")

    async def run_order_processing(self) -> None:
        try:
            await self._processor.process_batch(max_batch=self._batch_size)
        except Exception:
            logger.exception("order_processing_job_failed")

    def setup_jobs(self) -> None:
        now = datetime.now(UTC)
        self.scheduler.add_job(
            self.run_monitoring_tick,
            trigger=IntervalTrigger(
                minutes=self._tick_minutes,
                start_date=_quarter_hour_start(now, self._tick_minutes),
            ),
            id="monitoring_tick",
            name="Post-auth monitoring tick",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_order_processing,
            trigger=IntervalTrigger(seconds=self._processing_interval_seconds),
            id="order_processing",
            name="Order queue processing",
            replace_existing=True,
        )

    def start(self) -> None:
        self.setup_jobs()
        self.scheduler.start()
        logger.info(
            "background_ticker_started",
            tick_minutes=self._tick_minutes,
            processing_interval_seconds=self._processing_interval_seconds,
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("background_ticker_stopped")
