"""
FastAPI application initialization
"""

from datetime import timedelta
from fastapi import FastAPI
from api.routes import health, imports
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
from importer.catalog import DEFAULT_CATALOG
from importer.scheduler import ImportScheduler
from importer.sweeper import StaleRunSweeper
from importer.trigger import TriggerService
import logging

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Import Orchestration API",
    description="Triggers, tracks and reports on provider data imports",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

sweeper = StaleRunSweeper(
    stale_run_timeout=timedelta(minutes=settings.IMPORT_STALE_RUN_TIMEOUT_MINUTES),
    stale_batch_timeout=timedelta(minutes=settings.IMPORT_STALE_BATCH_TIMEOUT_MINUTES),
)
app.state.catalog = DEFAULT_CATALOG
app.state.trigger_service = TriggerService(
    catalog=app.state.catalog,
    sweeper=sweeper if settings.IMPORT_SWEEP_ON_TRIGGER else None,
)
scheduler = ImportScheduler(sweeper, trigger_service=app.state.trigger_service)

app.include_router(health.router)
app.include_router(imports.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Import Orchestration API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.IMPORT_SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Import Orchestration API")
    scheduler.stop()
    # Interrupted batches stay RUNNING until the next sweep recovers them
    await app.state.trigger_service.executor.shutdown()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Import Orchestration API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "trigger": "POST /api/import",
            "batches": "/api/import",
            "overview": "/api/import/overview",
            "batch_status": "/api/import/{batch_id}"
        }
    }
