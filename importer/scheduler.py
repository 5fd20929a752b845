import logging
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from importer.sweeper import StaleRunSweeper
from importer.trigger import TriggerService

logger = logging.getLogger(__name__)

SCHEDULER_IDENTITY = "scheduler"


class ImportScheduler:
    """
    Periodic jobs:
    - stale-run sweep on startup and every IMPORT_SWEEP_INTERVAL_MINUTES
    - import trigger every IMPORT_SCHEDULE_INTERVAL_MINUTES (0 disables it)
    """

    def __init__(
        self,
        sweeper: Optional[StaleRunSweeper] = None,
        trigger_service: Optional[TriggerService] = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.sweeper = sweeper or StaleRunSweeper()
        self.trigger_service = trigger_service

    async def run_sweep_job(self):
        """Job to recover abandoned runs and batches"""
        logger.info("Scheduler: Starting stale-run sweep")
        try:
            result = await self.sweeper.sweep()
            logger.info(
                f"Scheduler: sweep finished - {result.runs_failed} run(s) failed, "
                f"{len(result.batches_finalized)} batch(es) finalized"
            )
        except Exception as e:
            logger.error(f"Scheduler: stale-run sweep failed - {e}")

    async def run_import_job(self):
        """Job to start a scheduled import; a batch already running wins"""
        logger.info("Scheduler: Triggering import")
        try:
            result = await self.trigger_service.trigger_import(SCHEDULER_IDENTITY)
            logger.info(f"Scheduler: import trigger -> {result.status.value} (batch={result.batch_id})")
        except Exception as e:
            logger.error(f"Scheduler: import trigger failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sweep_job,
            trigger=IntervalTrigger(minutes=settings.IMPORT_SWEEP_INTERVAL_MINUTES),
            id="stale_run_sweep",
            replace_existing=True,
            next_run_time=datetime.now(),  # sweep once at startup
        )

        if self.trigger_service is not None and settings.IMPORT_SCHEDULE_INTERVAL_MINUTES > 0:
            self.scheduler.add_job(
                self.run_import_job,
                trigger=IntervalTrigger(minutes=settings.IMPORT_SCHEDULE_INTERVAL_MINUTES),
                id="scheduled_import",
                replace_existing=True,
                max_instances=1,
            )

        self.scheduler.start()
        logger.info("Import scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Import scheduler stopped")
