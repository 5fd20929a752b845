"""
Client-side batch status poller.

State machine: idle -> polling -> idle. Polling starts as soon as a batch
id is known to be (or about to be) RUNNING, fetches immediately and then on
a fixed interval, and stops for good the first time a fetched status is
not RUNNING. Transient fetch errors are logged and retried on the next tick.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from core.config import settings
from importer.catalog import DEFAULT_CATALOG, ScriptCatalog
from importer.projection import build_import_status
from schemas.api import BatchView, DataSourceImportStatus

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[dict[str, Any]]]
OnUpdate = Callable[[dict[str, Any]], Any]


class PollerState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"


def resolve_poll_target(
    loaded_batch_id: Optional[str],
    loaded_running: bool,
    triggered_batch_id: Optional[str] = None,
) -> Optional[str]:
    """A freshly triggered batch always wins over the one from the page load."""
    if triggered_batch_id:
        return triggered_batch_id
    if loaded_batch_id and loaded_running:
        return loaded_batch_id
    return None


class ImportStatusClient:
    """httpx fetcher for GET /api/import/{batch_id}."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def fetch_batch(self, batch_id: str) -> dict[str, Any]:
        response = await self._client.get(f"/api/import/{batch_id}")
        response.raise_for_status()
        return response.json()

    async def trigger(self, triggered_by: Optional[str] = None) -> dict[str, Any]:
        response = await self._client.post("/api/import", json={"triggeredBy": triggered_by})
        if response.status_code != 400:
            response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


class BatchStatusPoller:
    def __init__(
        self,
        fetch_status: FetchStatus,
        on_update: Optional[OnUpdate] = None,
        interval_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._fetch_status = fetch_status
        self._on_update = on_update
        self._interval_s = (interval_ms if interval_ms is not None else settings.IMPORT_POLL_INTERVAL_MS) / 1000
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._batch_id: Optional[str] = None
        self.last_status: Optional[dict[str, Any]] = None

    @property
    def state(self) -> PollerState:
        if self._task is not None and not self._task.done():
            return PollerState.POLLING
        return PollerState.IDLE

    @property
    def batch_id(self) -> Optional[str]:
        return self._batch_id

    def start(self, batch_id: str) -> asyncio.Task:
        """Poll batch_id, replacing any poll already in progress for another batch."""
        if self.state == PollerState.POLLING:
            if batch_id == self._batch_id:
                return self._task
            self._task.cancel()

        self._batch_id = batch_id
        self._task = asyncio.ensure_future(self._poll(batch_id))
        return self._task

    async def stop(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _poll(self, batch_id: str) -> None:
        while True:
            try:
                status = await self._fetch_status(batch_id)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Polling batch {batch_id} failed: {e}")
            else:
                self.last_status = status
                if self._on_update is not None:
                    outcome = self._on_update(status)
                    if asyncio.iscoroutine(outcome):
                        await outcome
                if status.get("status") != "RUNNING":
                    logger.info(f"Batch {batch_id} finished with status {status.get('status')}")
                    return

            await self._sleep(self._interval_s)


class ImportProgress:
    """Importing-screen state: data sources merged with the latest poll response."""

    def __init__(
        self,
        data_sources: Iterable[Any],
        catalog: ScriptCatalog = DEFAULT_CATALOG,
    ) -> None:
        self._data_sources = list(data_sources)
        self._catalog = catalog
        self.batch: Optional[BatchView] = None
        self.statuses: list[DataSourceImportStatus] = build_import_status(self._data_sources, [], catalog)

    def apply(self, payload: dict[str, Any]) -> list[DataSourceImportStatus]:
        self.batch = BatchView.model_validate(payload)
        self.statuses = build_import_status(self._data_sources, self.batch.runs, self._catalog)
        return self.statuses

    @property
    def is_running(self) -> bool:
        return self.batch is not None and self.batch.status == "RUNNING"
