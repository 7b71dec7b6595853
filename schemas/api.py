"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any, Generic, TypeVar
from datetime import datetime, timezone
from models.base import RunStatus
from schemas.pipeline import RunResult

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel, Generic[T]):
    request_id: str
    api_latency_ms: int
    data: T


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    storage_backend: str
    store_connected: bool
    scheduler_running: bool = False
    last_run_status: Optional[RunStatus] = None
    last_run_at: Optional[datetime] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.store_connected:
            self.status = "unhealthy"
        elif self.last_run_status == RunStatus.ERROR:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-05-22T10:30:00Z",
                "storage_backend": "postgres",
                "store_connected": True,
                "scheduler_running": True,
                "last_run_status": "FINISHED",
                "last_run_at": "2024-05-22T06:00:00Z"
            }
        }


# ============================================================================
# Run History Schemas
# ============================================================================

class RunSummary(BaseModel):
    """One scheduled run"""
    processor: str
    started_at: datetime
    result: RunResult


class RunsResponse(BaseModel):
    """Recent scheduled runs, most recent first"""
    total: int
    runs: List[RunSummary] = Field(default_factory=list)


# ============================================================================
# Document Schemas
# ============================================================================

class DocumentResponse(BaseModel):
    """One stored document"""
    path: str
    collection: str
    doc_id: str
    payload: Dict[str, Any]
