from sqlalchemy import Column, String, Integer, BigInteger, Enum, DateTime, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ImportStatus, new_id


class ImportBatch(Base):
    """
    One end-to-end import invocation.

    Purpose:
    - Audit trail of every triggered import (rows are never deleted)
    - Single-flight guard: at most one RUNNING batch exists

    Design:
    - The partial unique index on status makes a second RUNNING row
      impossible, so two racing triggers cannot both start a batch
    - completed_scripts/failed_scripts are written once, at finalization;
      live readers recount from import_runs
    """
    __tablename__ = "import_batches"

    id = Column(String(36), primary_key=True, default=new_id)

    status = Column(Enum(ImportStatus), nullable=False, default=ImportStatus.RUNNING, index=True)
    triggered_by = Column(String(200), nullable=False)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(BigInteger, nullable=True)

    # Statistics
    total_scripts = Column(Integer, nullable=False, default=0)
    completed_scripts = Column(Integer, nullable=False, default=0)
    failed_scripts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    runs = relationship("ImportRun", back_populates="batch", order_by="ImportRun.started_at.desc()")

    __table_args__ = (
        Index(
            "uq_import_batch_single_running",
            "status",
            unique=True,
            postgresql_where=text("status = 'RUNNING'"),
            sqlite_where=text("status = 'RUNNING'"),
        ),
    )
