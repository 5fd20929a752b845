"""
Import trigger and status endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import uuid
import logging

from api.dependencies import get_catalog, get_db, get_trigger_service
from core.exceptions import BatchNotFoundError
from importer.batch_registry import BatchRegistry
from importer.catalog import ScriptCatalog
from importer.projection import build_import_overview
from importer.run_tracker import RunCounts, RunTracker
from importer.trigger import TriggerService, TriggerStatus
from models.data_source import DataSource, Repository
from schemas.api import (
    BatchListResponse,
    BatchSummary,
    BatchView,
    ImportOverviewResponse,
    TriggerImportRequest,
    TriggerImportResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/import", tags=["Import"])

TRIGGER_MESSAGES = {
    TriggerStatus.NO_DATA_SOURCES: "No enabled data sources found. Please configure data sources first.",
    TriggerStatus.ALREADY_RUNNING: "An import is already in progress",
    TriggerStatus.STARTED: "Import started",
}

TRIGGER_STATUS_CODES = {
    TriggerStatus.NO_DATA_SOURCES: status.HTTP_400_BAD_REQUEST,
    TriggerStatus.ALREADY_RUNNING: status.HTTP_200_OK,
    TriggerStatus.STARTED: status.HTTP_202_ACCEPTED,
}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")


@router.post("", response_model=TriggerImportResponse, response_model_exclude_none=True)
async def trigger_import(
    request: Request,
    response: Response,
    body: Optional[TriggerImportRequest] = None,
    x_user: Optional[str] = Header(None, description="Identity of the user triggering the import"),
    service: TriggerService = Depends(get_trigger_service),
):
    """
    Start an import unless one is already running.

    Returns immediately; follow progress with GET /api/import/{batchId}.
    """
    triggered_by = (body.triggered_by if body else None) or x_user or "api"
    logger.info(f"[{_request_id(request)}] POST /api/import - triggered_by={triggered_by}")

    result = await service.trigger_import(triggered_by)
    response.status_code = TRIGGER_STATUS_CODES[result.status]

    return TriggerImportResponse(
        status=result.status.value,
        batch_id=result.batch_id,
        message=TRIGGER_MESSAGES[result.status],
    )


@router.get("", response_model=BatchListResponse)
async def list_batches(request: Request, db: AsyncSession = Depends(get_db)):
    """Ten most recent batches with live run counts."""
    logger.info(f"[{_request_id(request)}] GET /api/import")

    registry = BatchRegistry(db)
    batches = await registry.list_recent(limit=10)
    counts = await RunTracker(db).count_outcomes_for(batch.id for batch in batches)

    summaries = []
    for batch in batches:
        batch_counts = counts.get(batch.id, RunCounts())
        summaries.append(BatchSummary(
            id=batch.id,
            status=batch.status,
            triggered_by=batch.triggered_by,
            started_at=batch.started_at,
            completed_at=batch.completed_at,
            duration_ms=batch.duration_ms,
            total_scripts=batch.total_scripts,
            completed_scripts=batch_counts.completed,
            failed_scripts=batch_counts.failed,
            run_count=batch_counts.terminal + batch_counts.running,
        ))

    return BatchListResponse(
        batches=summaries,
        is_running=await registry.get_running_batch() is not None,
    )


@router.get("/overview", response_model=ImportOverviewResponse)
async def import_overview(
    request: Request,
    db: AsyncSession = Depends(get_db),
    catalog: ScriptCatalog = Depends(get_catalog),
):
    """Initial-load read model of the importing screen."""
    logger.info(f"[{_request_id(request)}] GET /api/import/overview")

    sources_result = await db.execute(
        select(DataSource)
        .where(DataSource.is_enabled.is_(True))
        .order_by(DataSource.created_at, DataSource.id)
    )
    data_sources = sources_result.scalars().all()

    repository_count_result = await db.execute(
        select(func.count()).select_from(Repository).where(Repository.is_enabled.is_(True))
    )
    repository_count = repository_count_result.scalar() or 0

    latest = await BatchRegistry(db).latest_batch()
    batch_view = await RunTracker(db).get_batch_view(latest.id) if latest else None

    return build_import_overview(
        data_sources=data_sources,
        latest_batch=batch_view,
        runs=batch_view.runs if batch_view else [],
        repository_count=repository_count,
        catalog=catalog,
    )


@router.get("/{batch_id}", response_model=BatchView)
async def get_batch_status(batch_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    """Batch status polled by the importing screen every few seconds."""
    try:
        return await RunTracker(db).get_batch_view(batch_id)
    except BatchNotFoundError as e:
        logger.info(f"[{_request_id(request)}] {e.message}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")
