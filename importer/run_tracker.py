"""
Run Tracker - persistence and live aggregation of import runs.

Counters on ImportBatch are only authoritative once the batch is terminal.
Every read here recounts COMPLETED/FAILED runs from the import_runs table
instead, which keeps the numbers correct after a crash and while a batch
is still RUNNING.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import logging

from core.exceptions import BatchNotFoundError, DatabaseError, RunNotFoundError
from models.base import ImportStatus
from models.import_batch import ImportBatch
from models.import_run import ImportRun
from schemas.api import BatchView, RunView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunCounts:
    completed: int = 0
    failed: int = 0
    running: int = 0

    @property
    def terminal(self) -> int:
        return self.completed + self.failed


class RunTracker:
    """Creates, finishes and aggregates ImportRun rows."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_run(self, batch_id: str, data_source_id: str, script_name: str) -> ImportRun:
        """Insert a RUNNING run right before its script executes."""
        run = ImportRun(
            batch_id=batch_id,
            data_source_id=data_source_id,
            script_name=script_name,
            status=ImportStatus.RUNNING,
            records_imported=0,
            records_failed=0,
            started_at=datetime.utcnow(),
        )
        self.db.add(run)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DatabaseError(
                "Run already exists for this batch script",
                context={
                    "batch_id": batch_id,
                    "data_source_id": data_source_id,
                    "script_name": script_name,
                    "operation": "INSERT",
                    "table_name": "import_runs",
                },
                original_exception=e,
            )

        return run

    async def complete_run(
        self,
        run_id: str,
        records_imported: int,
        records_failed: int = 0,
        last_fetched_at: Optional[datetime] = None,
        earliest_fetched_at: Optional[datetime] = None,
    ) -> bool:
        """Mark a run COMPLETED, recording the date range it covered for the next window."""
        return await self._finish_run(
            run_id,
            ImportStatus.COMPLETED,
            records_imported=records_imported,
            records_failed=records_failed,
            last_fetched_at=last_fetched_at,
            earliest_fetched_at=earliest_fetched_at,
        )

    async def fail_run(self, run_id: str, error_message: str, now: Optional[datetime] = None) -> bool:
        return await self._finish_run(run_id, ImportStatus.FAILED, now=now, error_message=error_message)

    async def _finish_run(self, run_id: str, status: ImportStatus, now: Optional[datetime] = None, **values) -> bool:
        """
        Move a run to a terminal state.

        Only a RUNNING run is updated; a run the sweeper already failed stays
        failed. Returns False when nothing changed.
        """
        run = await self.db.get(ImportRun, run_id)
        if run is None:
            raise RunNotFoundError(f"Import run {run_id} not found", context={"run_id": run_id})

        completed_at = now or datetime.utcnow()
        duration_ms = max(int((completed_at - run.started_at).total_seconds() * 1000), 0)

        result = await self.db.execute(
            update(ImportRun)
            .where(ImportRun.id == run_id, ImportRun.status == ImportStatus.RUNNING)
            .values(status=status, completed_at=completed_at, duration_ms=duration_ms, **values)
        )
        await self.db.commit()

        if result.rowcount == 0:
            logger.warning(f"Run {run_id} was already terminal, leaving it unchanged")
            return False
        return True

    async def fail_stale_runs(self, started_before: datetime, error_message: str, now: Optional[datetime] = None) -> List[ImportRun]:
        """Fail every RUNNING run that started before the threshold."""
        result = await self.db.execute(
            select(ImportRun).where(
                ImportRun.status == ImportStatus.RUNNING,
                ImportRun.started_at < started_before,
            )
        )
        stale_runs = result.scalars().all()

        failed = []
        for run in stale_runs:
            if await self.fail_run(run.id, error_message, now=now):
                failed.append(run)
        return failed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def count_outcomes(self, batch_id: str) -> RunCounts:
        counts = await self.count_outcomes_for([batch_id])
        return counts.get(batch_id, RunCounts())

    async def count_outcomes_for(self, batch_ids: Iterable[str]) -> Dict[str, RunCounts]:
        """Live COMPLETED/FAILED/RUNNING counts for several batches in one query."""
        batch_ids = list(batch_ids)
        if not batch_ids:
            return {}

        result = await self.db.execute(
            select(ImportRun.batch_id, ImportRun.status, func.count())
            .where(ImportRun.batch_id.in_(batch_ids))
            .group_by(ImportRun.batch_id, ImportRun.status)
        )

        raw: Dict[str, Dict[ImportStatus, int]] = {}
        for batch_id, status, count in result.all():
            raw.setdefault(batch_id, {})[ImportStatus(status)] = count

        return {
            batch_id: RunCounts(
                completed=by_status.get(ImportStatus.COMPLETED, 0),
                failed=by_status.get(ImportStatus.FAILED, 0),
                running=by_status.get(ImportStatus.RUNNING, 0),
            )
            for batch_id, by_status in raw.items()
        }

    async def last_activity_at(self, batch_id: str, ignore_error: Optional[str] = None) -> Optional[datetime]:
        """
        Latest start or completion of any run in the batch.

        Completions recorded with ignore_error (the sweeper's own verdicts)
        do not count as orchestrator activity.
        """
        started_result = await self.db.execute(
            select(func.max(ImportRun.started_at)).where(ImportRun.batch_id == batch_id)
        )
        completed_query = select(func.max(ImportRun.completed_at)).where(ImportRun.batch_id == batch_id)
        if ignore_error is not None:
            completed_query = completed_query.where(
                or_(ImportRun.error_message.is_(None), ImportRun.error_message != ignore_error)
            )
        completed_result = await self.db.execute(completed_query)

        started, completed = started_result.scalar(), completed_result.scalar()
        moments = [moment for moment in (started, completed) if moment is not None]
        return max(moments) if moments else None

    async def list_runs(self, batch_id: str) -> List[ImportRun]:
        """Runs of a batch, newest first, with their data source loaded."""
        result = await self.db.execute(
            select(ImportRun)
            .options(selectinload(ImportRun.data_source))
            .where(ImportRun.batch_id == batch_id)
            .order_by(ImportRun.started_at.desc(), ImportRun.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def last_completed_run(self, data_source_id: str, script_name: str) -> Optional[ImportRun]:
        result = await self.db.execute(
            select(ImportRun)
            .where(
                ImportRun.data_source_id == data_source_id,
                ImportRun.script_name == script_name,
                ImportRun.status == ImportStatus.COMPLETED,
            )
            .order_by(ImportRun.completed_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_batch_view(self, batch_id: str) -> BatchView:
        """Batch row plus its runs, with counts recomputed from the runs."""
        batch = await self.db.get(ImportBatch, batch_id, populate_existing=True)
        if batch is None:
            raise BatchNotFoundError(f"Import batch {batch_id} not found", context={"batch_id": batch_id})

        runs = await self.list_runs(batch_id)
        completed = sum(1 for run in runs if run.status == ImportStatus.COMPLETED)
        failed = sum(1 for run in runs if run.status == ImportStatus.FAILED)

        return BatchView(
            id=batch.id,
            status=batch.status,
            triggered_by=batch.triggered_by,
            started_at=batch.started_at,
            completed_at=batch.completed_at,
            duration_ms=batch.duration_ms,
            total_scripts=batch.total_scripts,
            completed_scripts=completed,
            failed_scripts=failed,
            runs=[RunView.model_validate(run) for run in runs],
        )
