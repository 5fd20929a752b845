"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from importer.catalog import ScriptCatalog
from importer.trigger import TriggerService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session"""
    async with async_session_maker() as session:
        yield session


def get_trigger_service(request: Request) -> TriggerService:
    """Process-wide trigger service created at application startup"""
    return request.app.state.trigger_service


def get_catalog(request: Request) -> ScriptCatalog:
    """Script catalog shared by the orchestrator and the status projection"""
    return request.app.state.catalog
