"""
Stale-Run Sweeper - crash-recovery backstop for abandoned runs and batches.

If the orchestrator dies mid-batch its RUNNING rows stay RUNNING forever and
the single-running-batch guard would block every later trigger. The sweeper
fails runs stuck past a grace period and finalizes batches that can no
longer make progress.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging

from core.config import settings
from importer.batch_registry import BatchRegistry
from importer.run_tracker import RunTracker

logger = logging.getLogger(__name__)

STALE_RUN_MESSAGE = "Run timed out - marked as failed after being stuck in RUNNING state"


@dataclass
class SweepResult:
    runs_failed: int = 0
    batches_finalized: List[str] = field(default_factory=list)


class StaleRunSweeper:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        stale_run_timeout: Optional[timedelta] = None,
        stale_batch_timeout: Optional[timedelta] = None,
    ):
        if session_factory is None:
            from core.database import async_session_maker

            session_factory = async_session_maker

        self.session_factory = session_factory
        self.stale_run_timeout = stale_run_timeout or timedelta(minutes=settings.IMPORT_STALE_RUN_TIMEOUT_MINUTES)
        self.stale_batch_timeout = stale_batch_timeout or timedelta(minutes=settings.IMPORT_STALE_BATCH_TIMEOUT_MINUTES)

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or datetime.utcnow()
        result = SweepResult()

        async with self.session_factory() as session:
            tracker = RunTracker(session)
            registry = BatchRegistry(session)

            failed_runs = await tracker.fail_stale_runs(
                started_before=now - self.stale_run_timeout,
                error_message=STALE_RUN_MESSAGE,
                now=now,
            )
            result.runs_failed = len(failed_runs)

            for batch in await registry.list_running():
                counts = await tracker.count_outcomes(batch.id)
                if counts.running > 0:
                    continue

                if counts.terminal >= batch.total_scripts:
                    await registry.finalize_batch(batch.id, now=now)
                    result.batches_finalized.append(batch.id)

                elif await self._last_activity(tracker, batch) < now - self.stale_batch_timeout:
                    # Orchestrator stopped before creating the remaining runs
                    await registry.finalize_batch(batch.id, force_failed=True, now=now)
                    result.batches_finalized.append(batch.id)

        if result.runs_failed or result.batches_finalized:
            logger.warning(
                f"Cleaned up {result.runs_failed} stale run(s) and "
                f"{len(result.batches_finalized)} stale import batch(es)"
            )

        return result

    @staticmethod
    async def _last_activity(tracker: RunTracker, batch) -> datetime:
        """A long batch is alive as long as its runs keep starting and finishing."""
        last_run_activity = await tracker.last_activity_at(batch.id, ignore_error=STALE_RUN_MESSAGE)
        if last_run_activity is None:
            return batch.started_at
        return max(batch.started_at, last_run_activity)
