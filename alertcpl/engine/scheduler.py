"""
Periodic trigger for the reconciliation loop.

Wraps an APScheduler ``AsyncIOScheduler`` with a single cron job. The job
runs with ``max_instances=1`` and ``coalesce=True``; single-flight is still
enforced by the loop itself, since manual triggers bypass the scheduler.
"""

from datetime import datetime

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from alertcpl.config.settings import get_settings
from alertcpl.engine.reconciliation import ReconciliationLoop
from alertcpl.engine.schemas import CycleResult

logger = structlog.get_logger(__name__)

JOB_ID = "reconciliation"
MISFIRE_GRACE_SECONDS = 300


class EngineScheduler:
    """
    Cron-driven scheduler for a ReconciliationLoop.

    Usage:
        scheduler = EngineScheduler(loop)
        scheduler.start()      # inside a running event loop
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        loop: ReconciliationLoop,
        cron: str | None = None,
        timezone: str | None = None,
    ):
        settings = get_settings()
        self._loop = loop
        self._cron = cron or settings.engine_cron
        self._timezone = timezone or settings.engine_timezone
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_time(self) -> datetime | None:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def start(self) -> None:
        """Register the cron job and start the scheduler. Must run inside an event loop."""
        if self.running:
            return

        trigger = CronTrigger.from_crontab(self._cron, timezone=self._timezone)
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._scheduler.add_job(
            self.tick,
            trigger,
            id=JOB_ID,
            name="CPL reconciliation",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        self._scheduler.start()
        logger.info(
            "Engine scheduler started",
            cron=self._cron,
            timezone=self._timezone,
            next_run=str(self.next_run_time),
        )

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Engine scheduler stopped")

    async def tick(self) -> CycleResult:
        """Scheduled entry point: run one cycle and log its summary."""
        result = await self._loop.run()
        logger.info("Scheduled reconciliation finished", **result.to_dict())
        return result
