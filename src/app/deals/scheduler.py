"""Background scheduler for periodic deal inbox intake.

Lightweight APScheduler wrapper with a single interval job that runs
EmailIntakeOrchestrator.process_email_folder. The job is registered with
max_instances=1 and coalesce=True: a run that is still going blocks the
next one, and missed runs collapse into a single catch-up run.

Exports:
    IntakeScheduler: Async scheduler for the deal intake job.
"""

from __future__ import annotations

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.app.deals.intake import EmailIntakeOrchestrator

logger = structlog.get_logger(__name__)

INTAKE_JOB_ID = "deal_intake_scan"


class IntakeScheduler:
    """Run deal intake on a fixed interval.

    Args:
        orchestrator: EmailIntakeOrchestrator to run.
        folder_name: Gmail label to scan.
        interval_minutes: Minutes between runs; 0 disables scheduling.
    """

    def __init__(
        self,
        orchestrator: EmailIntakeOrchestrator,
        folder_name: str = "Deals",
        interval_minutes: int = 15,
    ) -> None:
        self._orchestrator = orchestrator
        self._folder_name = folder_name
        self._interval_minutes = interval_minutes
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> bool:
        """Start the scheduler. Returns False when the interval is disabled."""
        if self._interval_minutes <= 0:
            logger.info("intake_scheduler.disabled", interval_minutes=self._interval_minutes)
            return False

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id=INTAKE_JOB_ID,
            name=f"Deal intake scan of '{self._folder_name}'",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._interval_minutes * 60,
        )
        self._scheduler.start()
        self._started = True
        logger.info(
            "intake_scheduler.started",
            folder_name=self._folder_name,
            interval_minutes=self._interval_minutes,
        )
        return True

    async def run_once(self) -> None:
        """Run a single intake pass. Errors are logged, never raised."""
        try:
            stats = await self._orchestrator.process_email_folder(self._folder_name)
        except Exception as exc:
            logger.error(
                "intake_scheduler.run_failed",
                folder_name=self._folder_name,
                error=str(exc),
            )
            return
        logger.info("intake_scheduler.run_complete", **stats.model_dump())

    def stop(self) -> None:
        """Shut down the scheduler."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("intake_scheduler.stopped")


__all__ = ["IntakeScheduler"]
