"""
Batch Registry - batch rows and the single-RUNNING-batch guard.

The guard is a check-then-insert backed by the partial unique index
uq_import_batch_single_running: if two triggers both observe "nothing
running", only one INSERT can commit. The loser rolls back and reports the
winner's batch, so the invariant holds across processes and restarts.
"""

from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from core.exceptions import BatchNotFoundError, DatabaseError
from importer.run_tracker import RunTracker
from models.base import ImportStatus
from models.import_batch import ImportBatch

logger = logging.getLogger(__name__)


class BatchRegistry:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_batch(self, batch_id: str) -> Optional[ImportBatch]:
        return await self.db.get(ImportBatch, batch_id, populate_existing=True)

    async def get_running_batch(self) -> Optional[ImportBatch]:
        result = await self.db.execute(
            select(ImportBatch)
            .where(ImportBatch.status == ImportStatus.RUNNING)
            .order_by(ImportBatch.started_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_running(self) -> List[ImportBatch]:
        result = await self.db.execute(
            select(ImportBatch)
            .where(ImportBatch.status == ImportStatus.RUNNING)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def latest_batch(self) -> Optional[ImportBatch]:
        result = await self.db.execute(
            select(ImportBatch)
            .order_by(ImportBatch.created_at.desc(), ImportBatch.started_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_recent(self, limit: int = 10) -> List[ImportBatch]:
        result = await self.db.execute(
            select(ImportBatch)
            .order_by(ImportBatch.created_at.desc(), ImportBatch.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def acquire_running_batch(self, triggered_by: str, total_scripts: int) -> Tuple[ImportBatch, bool]:
        """
        Return the RUNNING batch, creating it if none exists.

        Returns:
            (batch, created) where created is False when another trigger
            already owns the running batch.
        """
        existing = await self.get_running_batch()
        if existing is not None:
            return existing, False

        now = datetime.utcnow()
        batch = ImportBatch(
            status=ImportStatus.RUNNING,
            triggered_by=triggered_by,
            started_at=now,
            created_at=now,
            total_scripts=total_scripts,
            completed_scripts=0,
            failed_scripts=0,
        )
        self.db.add(batch)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info("Lost the race to start an import batch, reusing the running one")

            existing = await self.get_running_batch()
            if existing is None:
                raise DatabaseError(
                    "Failed to create import batch",
                    context={"operation": "INSERT", "table_name": "import_batches"},
                    original_exception=e,
                )
            return existing, False

        logger.info(f"Created import batch {batch.id} ({total_scripts} scripts) for {triggered_by}")
        return batch, True

    async def set_total_scripts(self, batch_id: str, total_scripts: int) -> None:
        await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id, ImportBatch.status == ImportStatus.RUNNING)
            .values(total_scripts=total_scripts)
        )
        await self.db.commit()

    async def finalize_batch(self, batch_id: str, force_failed: bool = False, now: Optional[datetime] = None) -> ImportBatch:
        """
        Write final counts and status from the run rows.

        The batch is FAILED when any run failed, when fewer scripts reached a
        terminal state than the batch expected, or when the caller forces it.
        A batch that is no longer RUNNING is returned untouched.
        """
        batch = await self.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Import batch {batch_id} not found", context={"batch_id": batch_id})

        if batch.status != ImportStatus.RUNNING:
            return batch

        counts = await RunTracker(self.db).count_outcomes(batch_id)
        incomplete = counts.terminal < batch.total_scripts
        failed = force_failed or counts.failed > 0 or incomplete
        status = ImportStatus.FAILED if failed else ImportStatus.COMPLETED

        completed_at = now or datetime.utcnow()
        duration_ms = max(int((completed_at - batch.started_at).total_seconds() * 1000), 0)

        result = await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id, ImportBatch.status == ImportStatus.RUNNING)
            .values(
                status=status,
                completed_at=completed_at,
                duration_ms=duration_ms,
                completed_scripts=counts.completed,
                failed_scripts=counts.failed,
            )
        )
        await self.db.commit()

        if result.rowcount == 0:
            logger.info(f"Batch {batch_id} was finalized concurrently")
        else:
            logger.info(
                f"Finalized batch {batch_id}: {status.value} - "
                f"completed={counts.completed}, failed={counts.failed}, total={batch.total_scripts}"
            )

        return await self.get_batch(batch_id)
