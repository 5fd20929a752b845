"""
Status projection tests (pure functions, no database)
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

from importer.catalog import ScriptCatalog
from importer.projection import build_import_overview, build_import_status, overall_status, task_status
from schemas.api import TaskStatus

CATALOG = ScriptCatalog({
    "github": ["repository", "contributor", "commit"],
    "jira": ["project", "issue"],
})
T0 = datetime(2024, 1, 15, 10, 0, 0)


def source(id, provider="github", name=None):
    return SimpleNamespace(id=id, provider=provider, name=name or id)


def run(data_source_id, script_name, status, started_at=T0, id=None, records=0, error=None):
    return SimpleNamespace(
        id=id or f"{data_source_id}-{script_name}-{started_at.isoformat()}",
        data_source_id=data_source_id,
        script_name=script_name,
        status=status,
        records_imported=records,
        error_message=error,
        started_at=started_at,
        completed_at=None if status == "RUNNING" else started_at + timedelta(seconds=5),
    )


def tasks(*statuses):
    return [TaskStatus(resource=f"r{i}", status=s) for i, s in enumerate(statuses)]


def test_task_status_mapping():
    assert task_status(None) == "pending"
    assert task_status(run("ds", "commit", "RUNNING")) == "running"
    assert task_status(run("ds", "commit", "COMPLETED")) == "completed"
    assert task_status(run("ds", "commit", "FAILED")) == "failed"


def test_overall_status_precedence():
    assert overall_status(tasks("running", "failed", "completed")) == "running"
    assert overall_status(tasks("failed", "completed", "pending")) == "partial"
    assert overall_status(tasks("completed", "completed")) == "completed"
    assert overall_status(tasks("completed", "pending")) == "pending"
    assert overall_status(tasks()) == "pending"


def test_tasks_follow_catalog_order_with_pending_for_missing_runs():
    statuses = build_import_status(
        [source("gh")],
        [run("gh", "repository", "COMPLETED", records=10)],
        CATALOG,
    )

    gh = statuses[0]
    assert [t.resource for t in gh.tasks] == ["repository", "contributor", "commit"]
    assert [t.status for t in gh.tasks] == ["completed", "pending", "pending"]
    assert gh.tasks[0].records_imported == 10
    assert gh.overall_status == "pending"


def test_failed_task_makes_source_partial():
    statuses = build_import_status(
        [source("gh")],
        [
            run("gh", "repository", "COMPLETED", records=10),
            run("gh", "contributor", "FAILED", error="API rate limit exceeded"),
            run("gh", "commit", "COMPLETED", records=100),
        ],
        CATALOG,
    )

    gh = statuses[0]
    assert gh.overall_status == "partial"
    assert gh.tasks[1].error_message == "API rate limit exceeded"


def test_latest_run_wins_per_script():
    statuses = build_import_status(
        [source("gh")],
        [
            run("gh", "repository", "FAILED", started_at=T0),
            run("gh", "repository", "COMPLETED", started_at=T0 + timedelta(minutes=1), records=4),
        ],
        CATALOG,
    )

    assert statuses[0].tasks[0].status == "completed"
    assert statuses[0].tasks[0].records_imported == 4


def test_runs_are_attributed_to_their_own_data_source():
    statuses = build_import_status(
        [source("gh-a"), source("gh-b"), source("jira", provider="jira")],
        [
            run("gh-a", "repository", "RUNNING"),
            run("jira", "project", "COMPLETED"),
            run("jira", "issue", "COMPLETED"),
        ],
        CATALOG,
    )

    by_id = {s.id: s for s in statuses}
    assert by_id["gh-a"].overall_status == "running"
    assert by_id["gh-b"].overall_status == "pending"
    assert by_id["jira"].overall_status == "completed"
    assert [t.resource for t in by_id["jira"].tasks] == ["project", "issue"]


def test_projection_is_deterministic():
    sources = [source("gh"), source("jira", provider="jira")]
    runs = [
        run("gh", "repository", "COMPLETED", records=3),
        run("gh", "contributor", "RUNNING"),
        run("jira", "project", "FAILED", error="boom"),
    ]

    first = build_import_status(sources, runs, CATALOG)
    second = build_import_status(sources, list(reversed(runs)), CATALOG)

    assert [s.model_dump() for s in first] == [s.model_dump() for s in second]


def test_overview_without_any_batch():
    overview = build_import_overview([source("gh")], None, [], repository_count=0, catalog=CATALOG)

    assert overview.has_started_import is False
    assert overview.is_import_running is False
    assert overview.current_batch is None
    assert overview.data_sources[0].overall_status == "pending"


def test_overview_with_running_batch():
    batch = SimpleNamespace(
        id="batch-1", status="RUNNING", total_scripts=3, completed_scripts=1, failed_scripts=0,
    )

    overview = build_import_overview(
        [source("gh")],
        batch,
        [run("gh", "repository", "COMPLETED"), run("gh", "contributor", "RUNNING")],
        repository_count=12,
        catalog=CATALOG,
    )

    assert overview.has_started_import is True
    assert overview.is_import_running is True
    assert overview.repository_count == 12
    assert overview.current_batch.id == "batch-1"
    assert overview.current_batch.completed_scripts == 1

    payload = overview.model_dump(by_alias=True)
    assert payload["isImportRunning"] is True
    assert payload["currentBatch"]["totalScripts"] == 3
