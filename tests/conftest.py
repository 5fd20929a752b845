"""
Pytest configuration and fixtures
"""

import os

# Must be set before any application module reads core.config.settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_import.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["IMPORT_SCHEDULER_ENABLED"] = "false"
os.environ["IMPORT_SWEEP_ON_TRIGGER"] = "false"

import asyncio
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from importer.catalog import ImportContext, ScriptCatalog
from models import Base, DataSource, DataSourceConfig, ImportBatch, ImportRun, Repository
from models.base import ImportStatus


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine on a throwaway SQLite file"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'import_test.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory shared by the services under test"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session


# ============================================================================
# Seed helpers
# ============================================================================

async def add_data_source(
    session: AsyncSession,
    provider: str = "github",
    name: Optional[str] = None,
    is_enabled: bool = True,
    config: Optional[Dict[str, str]] = None,
    created_at: Optional[datetime] = None,
) -> DataSource:
    source = DataSource(
        provider=provider,
        name=name or f"{provider}-source",
        is_enabled=is_enabled,
        created_at=created_at or datetime.utcnow(),
    )
    session.add(source)
    await session.flush()

    for key, value in (config or {}).items():
        session.add(DataSourceConfig(data_source_id=source.id, key=key, value=value))

    await session.commit()
    return source


async def add_repository(session: AsyncSession, data_source: DataSource, name: str, is_enabled: bool = True) -> Repository:
    repository = Repository(data_source_id=data_source.id, name=name, is_enabled=is_enabled)
    session.add(repository)
    await session.commit()
    return repository


async def add_batch(
    session: AsyncSession,
    status: ImportStatus = ImportStatus.RUNNING,
    total_scripts: int = 0,
    started_at: Optional[datetime] = None,
    triggered_by: str = "tester",
) -> ImportBatch:
    started_at = started_at or datetime.utcnow()
    batch = ImportBatch(
        status=status,
        triggered_by=triggered_by,
        started_at=started_at,
        created_at=started_at,
        total_scripts=total_scripts,
        completed_scripts=0,
        failed_scripts=0,
    )
    session.add(batch)
    await session.commit()
    return batch


async def add_run(
    session: AsyncSession,
    batch: ImportBatch,
    data_source: DataSource,
    script_name: str,
    status: ImportStatus = ImportStatus.RUNNING,
    records_imported: int = 0,
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
    error_message: Optional[str] = None,
    last_fetched_at: Optional[datetime] = None,
    earliest_fetched_at: Optional[datetime] = None,
) -> ImportRun:
    run = ImportRun(
        batch_id=batch.id,
        data_source_id=data_source.id,
        script_name=script_name,
        status=status,
        records_imported=records_imported,
        records_failed=0,
        started_at=started_at or datetime.utcnow(),
        completed_at=completed_at,
        error_message=error_message,
        last_fetched_at=last_fetched_at,
        earliest_fetched_at=earliest_fetched_at,
    )
    session.add(run)
    await session.commit()
    return run


# ============================================================================
# Fake importers
# ============================================================================

class RecordingImporter:
    """Returns a fixed count and remembers every context it was called with"""

    def __init__(self, records: int = 0, calls: Optional[List[ImportContext]] = None, delay: float = 0):
        self.records = records
        self.calls = calls if calls is not None else []
        self.delay = delay

    async def import_resource(self, context: ImportContext) -> int:
        self.calls.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.records


class FailingImporter:
    def __init__(self, message: str, calls: Optional[List[ImportContext]] = None):
        self.message = message
        self.calls = calls if calls is not None else []

    async def import_resource(self, context: ImportContext) -> int:
        self.calls.append(context)
        raise RuntimeError(self.message)


class GatedImporter:
    """Blocks until the test releases it, so a batch can be observed mid-flight"""

    def __init__(self, records: int = 0):
        self.records = records
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def import_resource(self, context: ImportContext) -> int:
        self.started.set()
        await self.release.wait()
        return self.records


@pytest.fixture
def four_script_catalog():
    """Single provider with four ordered resources"""
    return ScriptCatalog({"github": ["repository", "contributor", "commit", "pull-request"]})


@pytest.fixture
def long_ago():
    return datetime.utcnow() - timedelta(hours=2)
