"""Per-entity sync status storage.

Follows the same patterns as EntityStore and ChangeLog:
- (entity_type, entity_id) addressing
- asyncio lock around every read/write
- Optional JSON persistence

Last write wins. Only the orchestrator writes rows, one writer per entity,
so no optimistic concurrency is needed.

Usage:
    from content_sync.data_management.status_store import StatusStore

    store = StatusStore()
    await store.upsert("artist", "A1", SyncStatus.VERIFIED, datetime.now(timezone.utc))
    counts = await store.query_by_type("artist")
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from content_sync.data_management.persistence import read_json, write_json
from content_sync.data_management.schemas import (
    SyncStatus,
    SyncStatusRecord,
    TypeStatusCounts,
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StatusStore:
    """Storage for SyncStatusRecord rows.

    Data structure:
    {
        entity_type: {
            entity_id: SyncStatusRecord,
            ...
        },
        ...
    }
    """

    def __init__(self, persistence_path: Optional[str] = None) -> None:
        """Initialize StatusStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._records: dict[str, dict[str, SyncStatusRecord]] = {}
        self._lock = asyncio.Lock()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self._logger = structlog.get_logger().bind(component="StatusStore")

        loaded = read_json(self._persistence_path) or {}
        for entity_type, rows in loaded.items():
            self._records[entity_type] = {
                eid: SyncStatusRecord.model_validate(row) for eid, row in rows.items()
            }

    async def upsert(
        self,
        entity_type: str,
        entity_id: str,
        status: SyncStatus,
        timestamp: Optional[datetime] = None,
        **details: Any,
    ) -> SyncStatusRecord:
        """Overwrite the status row for an entity.

        Args:
            entity_type: Entity type.
            entity_id: Entity identifier.
            status: New status.
            timestamp: last_synced_at value. None leaves the entity unsynced
                (used when queueing as pending).
            **details: Optional SyncStatusRecord fields (confidence,
                corrections, photo_url, photo_source, error).

        Returns:
            The stored record.
        """
        record = SyncStatusRecord(
            entity_type=entity_type,
            entity_id=entity_id,
            status=status,
            last_synced_at=timestamp,
            **details,
        )
        async with self._lock:
            self._records.setdefault(entity_type, {})[entity_id] = record
            self._save()

        self._logger.debug(
            "status_upserted",
            entity_type=entity_type,
            entity_id=entity_id,
            status=status.value,
        )
        return record

    async def mark_pending(self, entity_type: str, entity_id: str) -> SyncStatusRecord:
        """Register an entity for syncing without touching an existing row."""
        async with self._lock:
            existing = self._records.get(entity_type, {}).get(entity_id)
        if existing is not None:
            return existing
        return await self.upsert(entity_type, entity_id, SyncStatus.PENDING)

    async def get(self, entity_type: str, entity_id: str) -> Optional[SyncStatusRecord]:
        async with self._lock:
            return self._records.get(entity_type, {}).get(entity_id)

    async def query_by_type(self, entity_type: str) -> TypeStatusCounts:
        """Dashboard counts for one entity type."""
        async with self._lock:
            rows = list(self._records.get(entity_type, {}).values())
        return self._count(rows)

    async def query_all(self) -> dict[str, TypeStatusCounts]:
        """Dashboard counts keyed by entity type."""
        async with self._lock:
            snapshot = {t: list(rows.values()) for t, rows in self._records.items()}
        return {t: self._count(rows) for t, rows in sorted(snapshot.items())}

    async def needs_review(
        self, entity_type: Optional[str] = None
    ) -> list[SyncStatusRecord]:
        """Rows awaiting human review, most recently updated first."""
        async with self._lock:
            rows = self._rows(entity_type)
        pending = [r for r in rows if r.status == SyncStatus.NEEDS_REVIEW]
        pending.sort(key=lambda r: r.updated_at, reverse=True)
        return pending

    async def stalest(self, limit: int = 50) -> list[SyncStatusRecord]:
        """Rows ordered by last_synced_at ascending, never-synced first."""
        async with self._lock:
            rows = self._rows(None)
        rows.sort(key=lambda r: (r.last_synced_at is not None, r.last_synced_at or _EPOCH))
        return rows[:limit]

    def _rows(self, entity_type: Optional[str]) -> list[SyncStatusRecord]:
        if entity_type:
            return list(self._records.get(entity_type, {}).values())
        return [r for rows in self._records.values() for r in rows.values()]

    @staticmethod
    def _count(rows: list[SyncStatusRecord]) -> TypeStatusCounts:
        counts = TypeStatusCounts(total=len(rows))
        for row in rows:
            if row.status == SyncStatus.VERIFIED:
                counts.verified += 1
            elif row.status == SyncStatus.NEEDS_REVIEW:
                counts.needs_review += 1
        return counts

    def _save(self) -> None:
        if not self._persistence_path:
            return
        data = {
            entity_type: {
                eid: record.model_dump(mode="json") for eid, record in rows.items()
            }
            for entity_type, rows in self._records.items()
        }
        write_json(self._persistence_path, data)
