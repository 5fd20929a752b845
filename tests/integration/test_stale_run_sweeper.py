"""
Stale-run sweeper tests
"""

import pytest
from datetime import datetime, timedelta

from conftest import add_batch, add_data_source, add_run
from importer.sweeper import STALE_RUN_MESSAGE, StaleRunSweeper
from models import ImportBatch, ImportRun
from models.base import ImportStatus

NOW = datetime(2024, 1, 15, 12, 0, 0)


@pytest.fixture
def sweeper(session_factory):
    return StaleRunSweeper(
        session_factory=session_factory,
        stale_run_timeout=timedelta(minutes=30),
        stale_batch_timeout=timedelta(minutes=60),
    )


async def reload(session_factory, model, id):
    async with session_factory() as session:
        return await session.get(model, id)


@pytest.mark.asyncio
async def test_stale_run_fails_and_batch_is_finalized(sweeper, session_factory, db_session):
    source = await add_data_source(db_session)
    started = NOW - timedelta(minutes=45)
    batch = await add_batch(db_session, total_scripts=2, started_at=started)
    await add_run(db_session, batch, source, "repository", ImportStatus.COMPLETED, started_at=started, completed_at=started)
    stuck = await add_run(db_session, batch, source, "contributor", started_at=started)

    result = await sweeper.sweep(now=NOW)

    assert result.runs_failed == 1
    assert result.batches_finalized == [batch.id]

    run = await reload(session_factory, ImportRun, stuck.id)
    assert run.status == ImportStatus.FAILED
    assert run.error_message == STALE_RUN_MESSAGE
    assert run.completed_at == NOW

    stored = await reload(session_factory, ImportBatch, batch.id)
    assert stored.status == ImportStatus.FAILED
    assert (stored.completed_scripts, stored.failed_scripts) == (1, 1)


@pytest.mark.asyncio
async def test_recent_running_work_is_left_alone(sweeper, session_factory, db_session):
    source = await add_data_source(db_session)
    started = NOW - timedelta(minutes=5)
    batch = await add_batch(db_session, total_scripts=2, started_at=started)
    run = await add_run(db_session, batch, source, "repository", started_at=started)

    result = await sweeper.sweep(now=NOW)

    assert result.runs_failed == 0
    assert result.batches_finalized == []
    assert (await reload(session_factory, ImportRun, run.id)).status == ImportStatus.RUNNING
    assert (await reload(session_factory, ImportBatch, batch.id)).status == ImportStatus.RUNNING


@pytest.mark.asyncio
async def test_batch_with_all_runs_terminal_is_finalized(sweeper, session_factory, db_session):
    source = await add_data_source(db_session)
    started = NOW - timedelta(minutes=5)
    batch = await add_batch(db_session, total_scripts=1, started_at=started)
    await add_run(db_session, batch, source, "repository", ImportStatus.COMPLETED, started_at=started, completed_at=started)

    result = await sweeper.sweep(now=NOW)

    assert result.batches_finalized == [batch.id]
    assert (await reload(session_factory, ImportBatch, batch.id)).status == ImportStatus.COMPLETED


@pytest.mark.asyncio
async def test_abandoned_batch_without_runs_times_out(sweeper, session_factory, db_session):
    batch = await add_batch(db_session, total_scripts=8, started_at=NOW - timedelta(minutes=90))

    result = await sweeper.sweep(now=NOW)

    assert result.batches_finalized == [batch.id]
    stored = await reload(session_factory, ImportBatch, batch.id)
    assert stored.status == ImportStatus.FAILED
    assert stored.completed_at == NOW


@pytest.mark.asyncio
async def test_young_batch_without_runs_is_kept(sweeper, session_factory, db_session):
    batch = await add_batch(db_session, total_scripts=8, started_at=NOW - timedelta(minutes=10))

    result = await sweeper.sweep(now=NOW)

    assert result.batches_finalized == []
    assert (await reload(session_factory, ImportBatch, batch.id)).status == ImportStatus.RUNNING


@pytest.mark.asyncio
async def test_sweep_is_idempotent(sweeper, db_session):
    source = await add_data_source(db_session)
    started = NOW - timedelta(minutes=45)
    batch = await add_batch(db_session, total_scripts=1, started_at=started)
    await add_run(db_session, batch, source, "repository", started_at=started)

    first = await sweeper.sweep(now=NOW)
    second = await sweeper.sweep(now=NOW)

    assert first.runs_failed == 1
    assert second.runs_failed == 0
    assert second.batches_finalized == []


@pytest.mark.asyncio
async def test_long_batch_between_scripts_is_kept(sweeper, session_factory, db_session):
    source = await add_data_source(db_session)
    batch = await add_batch(db_session, total_scripts=8, started_at=NOW - timedelta(minutes=61))
    for minutes_ago, script in ((50, "repository"), (20, "contributor"), (2, "issue")):
        await add_run(
            db_session, batch, source, script, ImportStatus.COMPLETED,
            started_at=NOW - timedelta(minutes=minutes_ago),
            completed_at=NOW - timedelta(minutes=minutes_ago) + timedelta(seconds=119),
        )

    result = await sweeper.sweep(now=NOW)

    assert result.batches_finalized == []
    stored = await reload(session_factory, ImportBatch, batch.id)
    assert stored.status == ImportStatus.RUNNING


@pytest.mark.asyncio
async def test_batch_whose_last_run_was_swept_still_times_out(sweeper, session_factory, db_session):
    source = await add_data_source(db_session)
    batch = await add_batch(db_session, total_scripts=8, started_at=NOW - timedelta(minutes=120))
    await add_run(db_session, batch, source, "repository", started_at=NOW - timedelta(minutes=100))

    result = await sweeper.sweep(now=NOW)

    # The sweeper's own completion of the stuck run is not orchestrator activity
    assert result.runs_failed == 1
    assert result.batches_finalized == [batch.id]
    assert (await reload(session_factory, ImportBatch, batch.id)).status == ImportStatus.FAILED
