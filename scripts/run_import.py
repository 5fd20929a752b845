"""
Script to run an import batch from the command line (cron, manual backfill)

Uses the same single-running-batch guard as POST /api/import, but waits for
the orchestrator instead of returning immediately.
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from core.config import settings
from core.logging import setup_logging
from importer.runner import ImportOrchestrator
from importer.sweeper import StaleRunSweeper
from importer.trigger import AsyncioTaskExecutor, TriggerService, TriggerStatus

setup_logging()
logger = logging.getLogger(__name__)


async def run_import(triggered_by: str) -> int:
    """Trigger a batch and wait for it; returns a process exit code"""

    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )

    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    executor = AsyncioTaskExecutor()
    service = TriggerService(
        session_factory=AsyncSessionLocal,
        executor=executor,
        orchestrator=ImportOrchestrator(session_factory=AsyncSessionLocal),
        sweeper=StaleRunSweeper(session_factory=AsyncSessionLocal),
    )

    try:
        result = await service.trigger_import(triggered_by)

        if result.status == TriggerStatus.NO_DATA_SOURCES:
            logger.warning("No enabled data sources configured. Skipping import.")
            return 0

        if result.status == TriggerStatus.ALREADY_RUNNING:
            logger.info(f"Import already in progress: batch={result.batch_id}")
            return 0

        await executor.drain()
        logger.info(f"Import batch {result.batch_id} finished")
        return 0

    except Exception as e:
        logger.error(f"Import pipeline error: {str(e)}")
        return 1
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Run an import batch for every enabled data source")
    parser.add_argument("--triggered-by", default="cli", help="Identity recorded on the batch")
    args = parser.parse_args()
    sys.exit(asyncio.run(run_import(args.triggered_by)))


if __name__ == "__main__":
    main()
