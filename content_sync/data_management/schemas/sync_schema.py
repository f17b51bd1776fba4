"""Sync status and run summary schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from content_sync.data_management.schemas.verification_schema import (
    Correction,
    ValidationStatus,
)


class SyncStatus(str, Enum):
    """Persisted per-entity status shown on dashboards."""

    VERIFIED = "verified"
    NEEDS_REVIEW = "needs_review"
    PENDING = "pending"

    @classmethod
    def from_validation(cls, status: ValidationStatus) -> "SyncStatus":
        # Conflicts are a human decision, same as needs_review
        if status == ValidationStatus.VERIFIED:
            return cls.VERIFIED
        return cls.NEEDS_REVIEW


class SyncStatusRecord(BaseModel):
    """One row per (entity_type, entity_id). Last write wins."""

    entity_type: str
    entity_id: str
    status: SyncStatus
    last_synced_at: Optional[datetime] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    corrections: list[Correction] = Field(default_factory=list)
    photo_url: Optional[str] = None
    photo_source: Optional[str] = None
    error: Optional[str] = None
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_type, self.entity_id)


class TypeStatusCounts(BaseModel):
    """Dashboard counts for one entity type."""

    total: int = 0
    verified: int = 0
    needs_review: int = 0


class RunState(str, Enum):
    """Batch run lifecycle: idle -> running -> completed | partially_failed."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"


class SyncSummary(BaseModel):
    """Aggregate result of one batch run.

    ``total`` is the size of the submitted batch; ``processed`` is how many
    entities finished before the run ended, which differs from ``total`` only
    on a cancelled or storage-failed run.
    """

    run_id: str = ""
    state: RunState = RunState.IDLE
    total: int = 0
    processed: int = 0
    verified: int = 0
    needs_review: int = 0
    failed: int = 0
    with_photos: int = 0
    corrections_applied: int = 0
    photo_requests_failed: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_report(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
