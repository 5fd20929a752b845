"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and the shared ImportStatus enum
    data_source: Connected providers, their config rows and repositories
    import_batch: One row per triggered import (append-only history)
    import_run: One row per executed (batch, data source, script)

Usage:
    from models import ImportBatch, ImportRun, DataSource
    from models.base import ImportStatus

Relationships:
    - ImportBatch → ImportRun (one-to-many)
    - DataSource → ImportRun (one-to-many)
    - DataSource → DataSourceConfig (one-to-many)
"""

from models.base import Base, ImportStatus, TERMINAL_STATUSES
from models.data_source import DataSource, DataSourceConfig, Repository
from models.import_batch import ImportBatch
from models.import_run import ImportRun

__all__ = [
    "Base",
    "ImportStatus",
    "TERMINAL_STATUSES",
    "DataSource",
    "DataSourceConfig",
    "Repository",
    "ImportBatch",
    "ImportRun",
]
