# ============================================================================
# File: importer/runner.py
# Description: Batch orchestrator executing the script catalog per data source
# ============================================================================
"""
Import Orchestrator - runs every catalog script for every enabled data source.

This module provides the background half of an import:
- Data sources import concurrently (bounded by a semaphore)
- Scripts within one data source run strictly in catalog order
- A failing script fails only its own run (partial-failure isolation)
- Each script is bounded by a timeout
- The batch is finalized from the run rows once everything is terminal
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
import logging

from core.cancel import CancellationRegistry, CancellationToken, cancellations
from core.config import settings
from core.exceptions import ScriptTimeoutError, error_message_for
from importer.batch_registry import BatchRegistry
from importer.catalog import DEFAULT_CATALOG, ImportContext, ScriptCatalog, ScriptDefinition, normalize_result
from importer.date_window import calculate_import_window
from importer.run_tracker import RunTracker
from models.base import ImportStatus
from models.data_source import DataSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSourceSnapshot:
    """Detached copy of an enabled data source taken when the batch starts."""
    id: str
    provider: str
    name: str
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class ScriptOutcome:
    data_source_id: str
    provider: str
    resource: str
    success: bool
    skipped: bool = False
    records_imported: int = 0
    error: Optional[str] = None


@dataclass
class OrchestratorResult:
    batch_id: str
    status: Optional[ImportStatus]
    scripts_executed: int
    scripts_failed: int
    scripts_skipped: int
    execution_time_ms: int
    errors: List[Dict[str, str]] = field(default_factory=list)


class ImportOrchestrator:
    """
    Executes one batch.

    Responsibilities:
    - Create a run immediately before each script
    - Invoke the script's importer and record its outcome
    - Keep failures contained to the script that raised
    - Finalize the batch status and counters
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        catalog: Optional[ScriptCatalog] = None,
        max_concurrent_sources: Optional[int] = None,
        script_timeout_seconds: Optional[float] = None,
        cancellation_registry: Optional[CancellationRegistry] = None,
    ):
        if session_factory is None:
            from core.database import async_session_maker

            session_factory = async_session_maker

        self.session_factory = session_factory
        self.catalog = catalog or DEFAULT_CATALOG
        self.max_concurrent_sources = max_concurrent_sources or settings.IMPORT_MAX_CONCURRENT_SOURCES
        self.script_timeout_seconds = script_timeout_seconds or settings.IMPORT_SCRIPT_TIMEOUT_SECONDS
        self.cancellations = cancellation_registry or cancellations

    async def run(self, batch_id: str) -> OrchestratorResult:
        """
        Run the whole catalog for a batch and finalize it.

        Unexpected errors outside a single script (database outages while
        loading data sources) abort the remaining work and finalize the
        batch as FAILED. If even finalization fails, the stale-run sweeper
        recovers the batch later.
        """
        start_time = time.perf_counter()
        token = self.cancellations.register(batch_id)
        outcomes: List[ScriptOutcome] = []
        force_failed = False

        try:
            data_sources = await self._load_data_sources(batch_id)
            logger.info(f"Batch {batch_id}: importing {len(data_sources)} data source(s)")

            semaphore = asyncio.Semaphore(self.max_concurrent_sources)
            per_source = await asyncio.gather(
                *(self._run_data_source(batch_id, source, semaphore, token) for source in data_sources)
            )
            for source_outcomes in per_source:
                outcomes.extend(source_outcomes)

        except Exception:
            logger.exception(f"Batch {batch_id}: orchestration aborted")
            force_failed = True

        finally:
            self.cancellations.release(batch_id)

        status = await self._finalize(batch_id, force_failed)
        result = self._build_result(batch_id, status, outcomes, start_time)

        logger.info(
            f"Import completed: batch={batch_id}, {result.scripts_executed} executed, "
            f"{result.scripts_failed} failed, {result.scripts_skipped} skipped "
            f"({result.execution_time_ms}ms)"
        )
        if result.errors:
            logger.warning(
                "Errors: " + ", ".join(f"{e['script']}: {e['error']}" for e in result.errors)
            )

        return result

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _load_data_sources(self, batch_id: str) -> List[DataSourceSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DataSource)
                .options(selectinload(DataSource.configs))
                .where(DataSource.is_enabled.is_(True))
                .order_by(DataSource.created_at, DataSource.id)
            )
            snapshots = [
                DataSourceSnapshot(
                    id=source.id,
                    provider=source.provider,
                    name=source.name,
                    env=source.environment(),
                )
                for source in result.scalars().all()
            ]

            # Sources may have changed between trigger and start
            registry = BatchRegistry(session)
            batch = await registry.get_batch(batch_id)
            total_scripts = self.catalog.total_scripts(s.provider for s in snapshots)
            if batch is not None and batch.total_scripts != total_scripts:
                logger.info(
                    f"Batch {batch_id}: total scripts {batch.total_scripts} -> {total_scripts}"
                )
                await registry.set_total_scripts(batch_id, total_scripts)

        return snapshots

    async def _run_data_source(
        self,
        batch_id: str,
        source: DataSourceSnapshot,
        semaphore: asyncio.Semaphore,
        token: CancellationToken,
    ) -> List[ScriptOutcome]:
        scripts = self.catalog.scripts_for(source.provider)
        if not scripts:
            logger.warning(f"No scripts in catalog for provider {source.provider} ({source.name})")
            return []

        outcomes: List[ScriptOutcome] = []

        async with semaphore:
            async with self.session_factory() as session:
                tracker = RunTracker(session)

                try:
                    for script in scripts:
                        if token.cancelled:
                            logger.info(f"Batch {batch_id}: cancelled, skipping the rest of {source.name}")
                            break
                        outcomes.append(await self._execute_script(tracker, batch_id, source, script))

                    await self._mark_synced(session, source.id)

                except Exception as e:
                    # Infrastructure failure: stop this data source only
                    logger.exception(f"Batch {batch_id}: data source {source.name} aborted")
                    outcomes.append(
                        ScriptOutcome(
                            data_source_id=source.id,
                            provider=source.provider,
                            resource="*",
                            success=False,
                            skipped=True,
                            error=error_message_for(e),
                        )
                    )

        return outcomes

    async def _execute_script(
        self,
        tracker: RunTracker,
        batch_id: str,
        source: DataSourceSnapshot,
        script: ScriptDefinition,
    ) -> ScriptOutcome:
        script_key = f"{source.provider}:{script.resource}"

        last_run = await tracker.last_completed_run(source.id, script.resource)
        window = calculate_import_window(
            last_fetched_at=(last_run.last_fetched_at or last_run.completed_at) if last_run else None,
            earliest_fetched_at=last_run.earliest_fetched_at if last_run else None,
            window_days=script.import_window_days,
            initial_window_days=settings.IMPORT_INITIAL_WINDOW_DAYS,
            backfill_chunk_days=settings.IMPORT_BACKFILL_CHUNK_DAYS,
        )
        earliest_fetched_at = window.earliest_fetched_at
        if last_run is not None and last_run.earliest_fetched_at is not None:
            earliest_fetched_at = min(earliest_fetched_at, last_run.earliest_fetched_at)

        run = await tracker.create_run(batch_id, source.id, script.resource)
        context = ImportContext(
            batch_id=batch_id,
            run_id=run.id,
            data_source_id=source.id,
            provider=source.provider,
            name=source.name,
            env=dict(source.env),
            start_date=window.forward.start_date,
            end_date=window.forward.end_date,
            backfill_start_date=window.backfill.start_date if window.backfill else None,
            backfill_end_date=window.backfill.end_date if window.backfill else None,
        )

        logger.info(f"Running {script_key} for {source.name} (run={run.id})")

        try:
            result = normalize_result(
                await asyncio.wait_for(
                    script.importer.import_resource(context),
                    timeout=self.script_timeout_seconds,
                )
            )

        except asyncio.TimeoutError:
            error = ScriptTimeoutError(
                f"Script timed out after {self.script_timeout_seconds:g} seconds",
                context={"provider": source.provider, "resource": script.resource,
                         "timeout_seconds": self.script_timeout_seconds},
            )
            logger.error(f"Script {script_key} failed: {error.message}")
            await tracker.fail_run(run.id, error.message)
            return self._failed(source, script, error.message)

        except Exception as e:
            message = error_message_for(e)
            logger.error(f"Script {script_key} failed: {message}")
            await tracker.fail_run(run.id, message)
            return self._failed(source, script, message)

        await tracker.complete_run(
            run.id,
            result.records_imported,
            result.records_failed,
            last_fetched_at=window.forward.end_date,
            earliest_fetched_at=earliest_fetched_at,
        )
        logger.info(f"Script {script_key} imported {result.records_imported} record(s)")

        return ScriptOutcome(
            data_source_id=source.id,
            provider=source.provider,
            resource=script.resource,
            success=True,
            records_imported=result.records_imported,
        )

    async def _mark_synced(self, session: AsyncSession, data_source_id: str) -> None:
        await session.execute(
            update(DataSource)
            .where(DataSource.id == data_source_id)
            .values(last_sync_at=datetime.utcnow())
        )
        await session.commit()

    async def _finalize(self, batch_id: str, force_failed: bool) -> Optional[ImportStatus]:
        try:
            async with self.session_factory() as session:
                batch = await BatchRegistry(session).finalize_batch(batch_id, force_failed=force_failed)
                return ImportStatus(batch.status)
        except Exception:
            logger.exception(f"Batch {batch_id}: finalization failed, leaving it to the stale-run sweeper")
            return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _failed(source: DataSourceSnapshot, script: ScriptDefinition, message: str) -> ScriptOutcome:
        return ScriptOutcome(
            data_source_id=source.id,
            provider=source.provider,
            resource=script.resource,
            success=False,
            error=message,
        )

    @staticmethod
    def _build_result(
        batch_id: str,
        status: Optional[ImportStatus],
        outcomes: List[ScriptOutcome],
        start_time: float,
    ) -> OrchestratorResult:
        errors: List[Dict[str, Any]] = [
            {"script": f"{o.provider}:{o.resource}", "error": o.error}
            for o in outcomes
            if not o.success and o.error
        ]
        return OrchestratorResult(
            batch_id=batch_id,
            status=status,
            scripts_executed=sum(1 for o in outcomes if o.success),
            scripts_failed=sum(1 for o in outcomes if not o.success and not o.skipped),
            scripts_skipped=sum(1 for o in outcomes if o.skipped),
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
            errors=errors,
        )
