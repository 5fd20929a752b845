from sqlalchemy import Column, String, Integer, BigInteger, Enum, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ImportStatus, new_id


class ImportRun(Base):
    """
    Execution record of one (data source, resource) script within a batch.

    Lifecycle:
    - Inserted as RUNNING immediately before the importer is invoked
    - Updated once to COMPLETED or FAILED, never re-opened
    - A missing row means the script has not started yet (pending)
    """
    __tablename__ = "import_runs"

    id = Column(String(36), primary_key=True, default=new_id)
    batch_id = Column(String(36), ForeignKey("import_batches.id"), nullable=False, index=True)
    data_source_id = Column(String(36), ForeignKey("data_sources.id"), nullable=False, index=True)
    script_name = Column(String(100), nullable=False)

    status = Column(Enum(ImportStatus), nullable=False, default=ImportStatus.RUNNING, index=True)

    # Statistics
    records_imported = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(BigInteger, nullable=True)

    # Date range covered, set when the run completes
    last_fetched_at = Column(DateTime, nullable=True)
    earliest_fetched_at = Column(DateTime, nullable=True)

    batch = relationship("ImportBatch", back_populates="runs")
    data_source = relationship("DataSource", back_populates="runs")

    __table_args__ = (
        Index("uq_import_run_script", "batch_id", "data_source_id", "script_name", unique=True),
        Index("idx_import_run_history", "data_source_id", "script_name", "status", "completed_at"),
    )
