"""Background scheduler for periodic Vinnova syncs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from grant_sync.config import SyncConfig
    from grant_sync.sync.service import VinnovaSyncService

logger = logging.getLogger(__name__)

VINNOVA_SYNC_JOB_ID = "vinnova_sync"


class SchedulerService:
    """Runs ``VinnovaSyncService.run_scheduled_sync`` on a fixed interval."""

    def __init__(self, cfg: SyncConfig, sync_service: VinnovaSyncService) -> None:
        """Initialize scheduler service.

        Args:
            cfg: Sync configuration (interval and enable flag)
            sync_service: Service whose scheduled entrypoint is run
        """
        self.cfg = cfg
        self.sync_service = sync_service
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    async def start(self) -> None:
        """Start the scheduler with configured jobs."""
        if self._started:
            logger.warning("scheduler_already_started")
            return

        self._scheduler = AsyncIOScheduler()

        if self.cfg.auto_enabled:
            self._scheduler.add_job(
                self._run_vinnova_sync,
                trigger=IntervalTrigger(minutes=self.cfg.interval_minutes),
                id=VINNOVA_SYNC_JOB_ID,
                name="Vinnova Sync",
                replace_existing=True,
                max_instances=1,  # Prevent overlapping runs
            )
            logger.info(
                "scheduler_vinnova_job_added",
                extra={
                    "job_id": VINNOVA_SYNC_JOB_ID,
                    "interval_minutes": self.cfg.interval_minutes,
                },
            )
        else:
            logger.info("scheduler_vinnova_job_skipped", extra={"auto_enabled": False})

        self._scheduler.start()
        self._started = True
        logger.info("scheduler_started")

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._started = False
            logger.info("scheduler_stopped")

    async def _run_vinnova_sync(self) -> None:
        correlation_id = f"scheduled_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S')}"
        logger.info("scheduled_vinnova_sync_starting", extra={"cid": correlation_id})

        reports = await self.sync_service.run_scheduled_sync()

        logger.info(
            "scheduled_vinnova_sync_complete",
            extra={
                "cid": correlation_id,
                "entities": [report.entity for report in reports],
                "failed": sum(report.failed for report in reports),
                "total": sum(report.total for report in reports),
            },
        )

    def get_next_run_time(self, job_id: str = VINNOVA_SYNC_JOB_ID) -> datetime | None:
        """Get next scheduled run time for a job, or None when it is not scheduled."""
        if not self._scheduler or not self._started:
            return None
        job = self._scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._started and self._scheduler is not None
