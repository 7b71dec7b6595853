"""
Pydantic schemas for pipeline values: policies, write operations, results
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from models.base import StorageBackend, RunStatus, WriteKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FreshnessPolicy(BaseModel):
    """
    Which trailing time windows an incremental run considers, and when a
    previously processed window counts as stale again.
    """
    window_count: int = Field(2, ge=1, description="Trailing windows to consider")
    staleness_threshold_days: int = Field(5, ge=0, description="Re-fetch windows refreshed longer ago than this")
    publication_lag_days: int = Field(1, ge=0, description="Days of a new window that must elapse before it is considered")

    class Config:
        frozen = True


class WriteOperation(BaseModel):
    """A single intended document store mutation"""
    kind: WriteKind
    path: str = Field(..., min_length=1)
    payload: Optional[Dict[str, Any]] = None
    merge: bool = True
    estimated_bytes: int = 0

    @property
    def collection(self) -> str:
        return self.path.rsplit("/", 1)[0]

    @property
    def doc_id(self) -> str:
        return self.path.rsplit("/", 1)[1]


class BatchResult(BaseModel):
    """Outcome of one batch flush"""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None
    paths: List[str] = Field(default_factory=list)


class WriterStats(BaseModel):
    """Running totals of a batch writer across all of its flushes"""
    enqueued: int = 0
    committed: int = 0
    failed: int = 0
    skipped_oversized: int = 0
    batches_committed: int = 0
    batches_failed: int = 0


class ValidationResult(BaseModel):
    """Result of a pre-flight validation phase"""
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


class ProgressEvent(BaseModel):
    """Progress notification delivered to run listeners"""
    status: RunStatus
    percent_complete: float = Field(..., ge=0, le=100)
    message: str
    details: Optional[Any] = None


class ETLErrorDetail(BaseModel):
    """Structured error attached to a run result"""
    code: str
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)
    context: Optional[Dict[str, Any]] = None


class LoadResult(BaseModel):
    """Counts reported by a load phase"""
    successes: int = 0
    failures: int = 0
    warnings: int = 0
    details: Dict[str, Any] = Field(default_factory=dict)


class RunOptions(BaseModel):
    """Options of one pipeline run, chosen by the CLI or scheduler"""
    destination: StorageBackend = StorageBackend.MEMORY
    dry_run: bool = False
    verbose: bool = False
    incremental: bool = False

    # Selection filters
    legislature: Optional[int] = None
    limit: Optional[int] = Field(None, ge=0)
    deputy_id: Optional[str] = None
    party: Optional[str] = None
    state: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    concurrency: int = 3


class RunResult(BaseModel):
    """Final, always-returned outcome of a pipeline run"""
    status: RunStatus
    successes: int = 0
    failures: int = 0
    warnings: int = 0
    duration_seconds: float = 0.0
    extraction_seconds: Optional[float] = None
    transformation_seconds: Optional[float] = None
    load_seconds: Optional[float] = None
    destination: str
    legislature: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    errors: List[ETLErrorDetail] = Field(default_factory=list)
