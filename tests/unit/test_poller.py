"""
Client poller tests with a scripted fetcher and an instant sleep
"""

import asyncio
import httpx
import pytest
from datetime import datetime
from types import SimpleNamespace

from client.poller import BatchStatusPoller, ImportProgress, ImportStatusClient, PollerState, resolve_poll_target
from importer.catalog import ScriptCatalog


class ScriptedFetcher:
    """Returns (or raises) the queued responses in order, repeating the last one"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, batch_id):
        self.calls.append(batch_id)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


def batch(status, completed=0):
    return {"id": "batch-1", "status": status, "completedScripts": completed}


def test_resolve_poll_target():
    assert resolve_poll_target(None, False) is None
    assert resolve_poll_target("loaded", False) is None
    assert resolve_poll_target("loaded", True) == "loaded"
    assert resolve_poll_target("loaded", True, triggered_batch_id="new") == "new"
    assert resolve_poll_target(None, False, triggered_batch_id="new") == "new"


@pytest.mark.asyncio
async def test_polls_until_batch_is_terminal():
    fetcher = ScriptedFetcher(batch("RUNNING"), batch("RUNNING", 1), batch("COMPLETED", 2))
    sleep = RecordingSleep()
    updates = []
    poller = BatchStatusPoller(fetcher, on_update=updates.append, interval_ms=3000, sleep=sleep)

    poller.start("batch-1")
    assert poller.state == PollerState.POLLING
    await poller.wait()

    assert poller.state == PollerState.IDLE
    assert fetcher.calls == ["batch-1"] * 3
    assert [u["status"] for u in updates] == ["RUNNING", "RUNNING", "COMPLETED"]
    assert sleep.calls == [3.0, 3.0]
    assert poller.last_status["completedScripts"] == 2


@pytest.mark.asyncio
async def test_first_fetch_is_immediate():
    fetcher = ScriptedFetcher(batch("FAILED"))
    sleep = RecordingSleep()
    poller = BatchStatusPoller(fetcher, interval_ms=3000, sleep=sleep)

    poller.start("batch-1")
    await poller.wait()

    assert fetcher.calls == ["batch-1"]
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_transient_errors_do_not_stop_polling():
    fetcher = ScriptedFetcher(
        httpx.ConnectError("connection refused"),
        ValueError("invalid JSON"),
        batch("COMPLETED"),
    )
    updates = []
    poller = BatchStatusPoller(fetcher, on_update=updates.append, interval_ms=10, sleep=RecordingSleep())

    poller.start("batch-1")
    await poller.wait()

    assert len(fetcher.calls) == 3
    assert [u["status"] for u in updates] == ["COMPLETED"]


@pytest.mark.asyncio
async def test_async_update_callback_is_awaited():
    seen = []

    async def on_update(status):
        seen.append(status["status"])

    poller = BatchStatusPoller(ScriptedFetcher(batch("COMPLETED")), on_update=on_update, sleep=RecordingSleep())

    poller.start("batch-1")
    await poller.wait()

    assert seen == ["COMPLETED"]


@pytest.mark.asyncio
async def test_new_batch_replaces_current_poll():
    fetcher = ScriptedFetcher(batch("RUNNING"))
    poller = BatchStatusPoller(fetcher, interval_ms=10, sleep=RecordingSleep())

    first = poller.start("old-batch")
    await asyncio.sleep(0)
    poller.start("new-batch")

    with pytest.raises(asyncio.CancelledError):
        await first
    await asyncio.sleep(0.01)

    assert poller.batch_id == "new-batch"

    await poller.stop()
    assert poller.state == PollerState.IDLE
    assert "new-batch" in fetcher.calls


@pytest.mark.asyncio
async def test_start_same_batch_reuses_task():
    poller = BatchStatusPoller(ScriptedFetcher(batch("RUNNING")), interval_ms=10, sleep=RecordingSleep())

    task = poller.start("batch-1")
    assert poller.start("batch-1") is task

    await poller.stop()


@pytest.mark.asyncio
async def test_status_client_fetches_batch():
    def handler(request):
        assert request.url.path == "/api/import/batch-1"
        return httpx.Response(200, json=batch("RUNNING"))

    client = ImportStatusClient(
        "http://test",
        client=httpx.AsyncClient(base_url="http://test", transport=httpx.MockTransport(handler)),
    )
    try:
        assert (await client.fetch_batch("batch-1"))["status"] == "RUNNING"
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_status_client_raises_for_missing_batch():
    client = ImportStatusClient(
        "http://test",
        client=httpx.AsyncClient(
            base_url="http://test",
            transport=httpx.MockTransport(lambda request: httpx.Response(404, json={"detail": "Batch not found"})),
        ),
    )
    try:
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_batch("missing")
    finally:
        await client.aclose()


def test_import_progress_merges_poll_response():
    catalog = ScriptCatalog({"github": ["repository", "contributor"]})
    progress = ImportProgress([SimpleNamespace(id="gh", provider="github", name="acme")], catalog)

    assert progress.statuses[0].overall_status == "pending"
    assert progress.is_running is False

    started = datetime(2024, 1, 15, 10, 0, 0).isoformat()
    statuses = progress.apply({
        "id": "batch-1",
        "status": "RUNNING",
        "triggeredBy": "ada",
        "startedAt": started,
        "totalScripts": 2,
        "completedScripts": 1,
        "failedScripts": 0,
        "runs": [
            {
                "id": "run-1",
                "dataSourceId": "gh",
                "scriptName": "repository",
                "status": "COMPLETED",
                "recordsImported": 10,
                "startedAt": started,
            },
            {
                "id": "run-2",
                "dataSourceId": "gh",
                "scriptName": "contributor",
                "status": "RUNNING",
                "startedAt": started,
            },
        ],
    })

    assert progress.is_running is True
    assert [t.status for t in statuses[0].tasks] == ["completed", "running"]
    assert statuses[0].overall_status == "running"
