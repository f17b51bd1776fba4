"""Change log schemas.

A ChangeLogEntry is written once per applied mutation and never deleted.
The only permitted later write is the single reversed_at/reversed_by
transition performed by ChangeLog.reverse.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    def inverse(self) -> "ChangeAction":
        """Action that undoes this one (insert <-> delete, update -> update)."""
        if self is ChangeAction.INSERT:
            return ChangeAction.DELETE
        if self is ChangeAction.DELETE:
            return ChangeAction.INSERT
        return ChangeAction.UPDATE


class ChangeLogEntry(BaseModel):
    """Audit record of one mutation with before/after snapshots."""

    id: str = Field(default_factory=lambda: f"chg-{uuid.uuid4().hex}")
    actor: str = Field(..., min_length=1)
    action: ChangeAction
    entity_type: str
    entity_id: str
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    reversible: bool = True
    reversed_at: Optional[datetime] = None
    reversed_by: Optional[str] = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    @staticmethod
    def compute_reversible(
        action: ChangeAction, before: Optional[dict[str, Any]]
    ) -> bool:
        """A delete can only be undone if the deleted data was captured."""
        return action != ChangeAction.DELETE or before is not None
