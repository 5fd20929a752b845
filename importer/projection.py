"""
Status Projection - read-side view of a batch per data source and task.

Pure functions: the same data sources and runs always produce the same
output. The importing screen uses them for the initial page load and again
to merge every poll response.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from importer.catalog import DEFAULT_CATALOG, ScriptCatalog
from schemas.api import CurrentBatch, DataSourceImportStatus, ImportOverviewResponse, TaskStatus

TASK_STATUS_BY_RUN_STATUS = {
    "RUNNING": "running",
    "COMPLETED": "completed",
    "FAILED": "failed",
}


def _status_value(status: Any) -> str:
    return str(getattr(status, "value", status))


def task_status(run: Optional[Any]) -> str:
    if run is None:
        return "pending"
    return TASK_STATUS_BY_RUN_STATUS.get(_status_value(run.status), "pending")


def overall_status(tasks: List[TaskStatus]) -> str:
    statuses = [task.status for task in tasks]
    if "running" in statuses:
        return "running"
    if "failed" in statuses:
        return "partial"
    if statuses and all(status == "completed" for status in statuses):
        return "completed"
    return "pending"


def _latest_runs(runs: Iterable[Any]) -> Dict[Tuple[str, str], Any]:
    """Most recently started run per (data source, script); ties broken by id."""
    latest: Dict[Tuple[str, str], Any] = {}
    for run in runs:
        key = (run.data_source_id, run.script_name)
        rank = (run.started_at or datetime.min, str(run.id))
        current = latest.get(key)
        if current is None or rank > (current.started_at or datetime.min, str(current.id)):
            latest[key] = run
    return latest


def build_import_status(
    data_sources: Iterable[Any],
    runs: Iterable[Any],
    catalog: ScriptCatalog = DEFAULT_CATALOG,
) -> List[DataSourceImportStatus]:
    """
    Per-data-source task list with an overall status.

    Args:
        data_sources: Objects with id, provider and name
        runs: Objects with the ImportRun/RunView attributes
        catalog: Decides which tasks each provider has and their order
    """
    latest = _latest_runs(runs)
    statuses = []

    for source in data_sources:
        tasks = []
        for resource in catalog.resources_for(source.provider):
            run = latest.get((source.id, resource))
            tasks.append(
                TaskStatus(
                    resource=resource,
                    status=task_status(run),
                    records_imported=(run.records_imported or 0) if run else 0,
                    error_message=run.error_message if run else None,
                    started_at=run.started_at if run else None,
                    completed_at=run.completed_at if run else None,
                )
            )

        statuses.append(
            DataSourceImportStatus(
                id=source.id,
                provider=source.provider,
                name=source.name,
                overall_status=overall_status(tasks),
                tasks=tasks,
            )
        )

    return statuses


def build_import_overview(
    data_sources: Iterable[Any],
    latest_batch: Optional[Any],
    runs: Iterable[Any],
    repository_count: int,
    catalog: ScriptCatalog = DEFAULT_CATALOG,
) -> ImportOverviewResponse:
    """Initial-load read model: projection plus batch summary flags."""
    current_batch = None
    if latest_batch is not None:
        current_batch = CurrentBatch(
            id=latest_batch.id,
            status=latest_batch.status,
            total_scripts=latest_batch.total_scripts,
            completed_scripts=latest_batch.completed_scripts,
            failed_scripts=latest_batch.failed_scripts,
        )

    return ImportOverviewResponse(
        data_sources=build_import_status(data_sources, runs, catalog),
        repository_count=repository_count,
        is_import_running=latest_batch is not None and _status_value(latest_batch.status) == "RUNNING",
        has_started_import=latest_batch is not None,
        current_batch=current_batch,
    )
