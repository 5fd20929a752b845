"""
Trigger Service - decides no-op / already-running / start-new.

trigger_import() runs inside the triggering request. It never waits for the
import itself: the orchestrator is handed to an ImportTaskExecutor and the
call returns as soon as the batch row exists. Callers must not assume any
run has been created yet.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from importer.batch_registry import BatchRegistry
from importer.catalog import DEFAULT_CATALOG, ScriptCatalog
from importer.runner import ImportOrchestrator
from importer.sweeper import StaleRunSweeper
from models.data_source import DataSource

logger = logging.getLogger(__name__)


class TriggerStatus(str, enum.Enum):
    NO_DATA_SOURCES = "no_data_sources"
    ALREADY_RUNNING = "already_running"
    STARTED = "started"


@dataclass(frozen=True)
class TriggerResult:
    status: TriggerStatus
    batch_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        if self.batch_id is None:
            return {"status": self.status.value}
        return {"status": self.status.value, "batchId": self.batch_id}


class ImportTaskExecutor(Protocol):
    def submit(self, task: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        ...


class AsyncioTaskExecutor:
    """Runs submitted coroutines as detached asyncio tasks on the current loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, task: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        background = asyncio.ensure_future(task(*args, **kwargs))
        self._tasks.add(background)
        background.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background import task was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error("Background import task failed", exc_info=error)

    async def drain(self) -> None:
        """Wait for every submitted task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)


class TriggerService:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        executor: ImportTaskExecutor | None = None,
        orchestrator: ImportOrchestrator | None = None,
        catalog: ScriptCatalog | None = None,
        sweeper: StaleRunSweeper | None = None,
    ) -> None:
        if session_factory is None:
            from core.database import async_session_maker

            self._session_factory = async_session_maker
        else:
            self._session_factory = session_factory

        self._catalog = catalog or DEFAULT_CATALOG
        self._executor = executor or AsyncioTaskExecutor()
        self._orchestrator = orchestrator or ImportOrchestrator(
            session_factory=self._session_factory,
            catalog=self._catalog,
        )
        self._sweeper = sweeper

    @property
    def executor(self) -> ImportTaskExecutor:
        return self._executor

    async def trigger_import(self, triggered_by: str) -> TriggerResult:
        if self._sweeper is not None:
            await self._sweeper.sweep()

        async with self._session_factory() as session:
            result = await session.execute(
                select(DataSource.provider).where(DataSource.is_enabled.is_(True))
            )
            providers = list(result.scalars().all())

            if not providers:
                logger.info("Import requested but no data sources are enabled")
                return TriggerResult(TriggerStatus.NO_DATA_SOURCES)

            registry = BatchRegistry(session)
            batch, created = await registry.acquire_running_batch(
                triggered_by=triggered_by,
                total_scripts=self._catalog.total_scripts(providers),
            )
            batch_id = batch.id

        if not created:
            logger.info(f"Import already running: batch={batch_id}")
            return TriggerResult(TriggerStatus.ALREADY_RUNNING, batch_id)

        try:
            self._executor.submit(self._orchestrator.run, batch_id)
        except Exception:
            logger.exception(f"Failed to schedule import batch {batch_id}")
            async with self._session_factory() as session:
                await BatchRegistry(session).finalize_batch(batch_id, force_failed=True)
            raise

        logger.info(f"Import started: batch={batch_id}, triggered_by={triggered_by}")
        return TriggerResult(TriggerStatus.STARTED, batch_id)
