"""
Pydantic schemas for API request/response models

JSON is camelCase on the wire (batchId, completedScripts); Python code uses
the snake_case field names.
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime
from models.base import ImportStatus


class CamelModel(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel
        use_enum_values = True


# ============================================================================
# Run Tracker Views
# ============================================================================

class DataSourceSummary(CamelModel):
    id: str
    provider: str
    name: str


class RunView(CamelModel):
    """One import run as returned by the batch status endpoint"""
    id: str
    data_source_id: str
    data_source: Optional[DataSourceSummary] = None
    script_name: str
    status: ImportStatus
    records_imported: int = 0
    records_failed: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class BatchView(CamelModel):
    """
    Batch status with live counts.

    completed_scripts/failed_scripts are recounted from the run rows on
    every read, so they move while the batch is still RUNNING.
    """
    id: str
    status: ImportStatus
    triggered_by: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    total_scripts: int
    completed_scripts: int
    failed_scripts: int
    runs: List[RunView] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "4f9c2a1e-8d53-4d0e-9a57-2b8f1f6f0c11",
                "status": "RUNNING",
                "triggeredBy": "ada@example.com",
                "startedAt": "2024-01-15T10:30:00",
                "completedAt": None,
                "durationMs": None,
                "totalScripts": 8,
                "completedScripts": 3,
                "failedScripts": 1,
                "runs": [
                    {
                        "id": "b1a8d9c2-5f3e-4c1a-9b0d-7e6f5a4b3c2d",
                        "dataSourceId": "ds-github",
                        "dataSource": {"id": "ds-github", "provider": "github", "name": "acme"},
                        "scriptName": "contributor",
                        "status": "FAILED",
                        "recordsImported": 0,
                        "recordsFailed": 0,
                        "errorMessage": "API rate limit exceeded",
                        "startedAt": "2024-01-15T10:30:02",
                        "completedAt": "2024-01-15T10:30:03",
                        "durationMs": 1040
                    }
                ]
            }
        }


class BatchSummary(CamelModel):
    id: str
    status: ImportStatus
    triggered_by: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    total_scripts: int
    completed_scripts: int
    failed_scripts: int
    run_count: int


class BatchListResponse(CamelModel):
    batches: List[BatchSummary] = Field(default_factory=list)
    is_running: bool = False


# ============================================================================
# Status Projection
# ============================================================================

class TaskStatus(CamelModel):
    resource: str
    status: str = Field(..., description="pending, running, completed or failed")
    records_imported: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class DataSourceImportStatus(CamelModel):
    id: str
    provider: str
    name: str
    overall_status: str = Field(..., description="pending, running, partial or completed")
    tasks: List[TaskStatus] = Field(default_factory=list)


class CurrentBatch(CamelModel):
    id: str
    status: ImportStatus
    total_scripts: int
    completed_scripts: int
    failed_scripts: int


class ImportOverviewResponse(CamelModel):
    """Initial-load read model of the importing screen"""
    data_sources: List[DataSourceImportStatus] = Field(default_factory=list)
    repository_count: int = 0
    is_import_running: bool = False
    has_started_import: bool = False
    current_batch: Optional[CurrentBatch] = None


# ============================================================================
# Trigger
# ============================================================================

class TriggerImportRequest(CamelModel):
    triggered_by: Optional[str] = Field(None, max_length=200)


class TriggerImportResponse(CamelModel):
    status: str = Field(..., description="no_data_sources, already_running or started")
    batch_id: Optional[str] = None
    message: str


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy or unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    running_batch_id: Optional[str] = None
