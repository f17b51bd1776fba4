"""Schema package for the content sync pipeline.

Pydantic models for every value that crosses a component boundary:
- verification_schema: EntityRef, VerificationRequest, OracleFinding,
  OracleError, ValidationOutcome and policy
- change_log_schema: ChangeLogEntry and ChangeAction
- sync_schema: SyncStatusRecord, TypeStatusCounts, SyncSummary

Usage:
    from content_sync.data_management.schemas import EntityRef, SyncStatus
    ref = EntityRef(type="artist", id="A1", data={"name": "DJ X"})
"""

from content_sync.data_management.schemas.verification_schema import (
    Correction,
    EntityRef,
    OracleError,
    OracleErrorKind,
    OracleFinding,
    OracleResult,
    ValidationOutcome,
    ValidationPolicy,
    ValidationStatus,
    VerificationRequest,
)
from content_sync.data_management.schemas.change_log_schema import (
    ChangeAction,
    ChangeLogEntry,
)
from content_sync.data_management.schemas.sync_schema import (
    RunState,
    SyncStatus,
    SyncStatusRecord,
    SyncSummary,
    TypeStatusCounts,
)

__all__ = [
    "Correction",
    "EntityRef",
    "OracleError",
    "OracleErrorKind",
    "OracleFinding",
    "OracleResult",
    "ValidationOutcome",
    "ValidationPolicy",
    "ValidationStatus",
    "VerificationRequest",
    "ChangeAction",
    "ChangeLogEntry",
    "RunState",
    "SyncStatus",
    "SyncStatusRecord",
    "SyncSummary",
    "TypeStatusCounts",
]
