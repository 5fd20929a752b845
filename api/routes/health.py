"""
Health check endpoint with database and import status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db
from importer.batch_registry import BatchRegistry
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Id of the running import batch, if any
    """
    db_connected = False
    running_batch_id = None

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    if db_connected:
        try:
            running = await BatchRegistry(db).get_running_batch()
            running_batch_id = running.id if running else None
        except Exception as e:
            logger.error(f"Failed to read running import batch: {str(e)}")

    return HealthCheckResponse(
        status="healthy" if db_connected else "unhealthy",
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        running_batch_id=running_batch_id,
    )
