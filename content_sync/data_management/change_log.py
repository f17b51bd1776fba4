"""Append-only change log with reversible entries.

Records every mutation applied to the entity store, with before/after
snapshots, so an operator can audit and undo pipeline corrections.

Rules:
- Entries are never deleted and never rewritten, except for the single
  reversed_at/reversed_by transition.
- Reversal performs the inverse mutation on the entity store, then appends a
  new entry describing the reversal (metadata.reversal_of = original id).
- The reversed_at transition is a compare-and-set under the log's lock, so two
  concurrent reverse() calls cannot both succeed.

Usage:
    from content_sync.data_management.change_log import ChangeLog

    log = ChangeLog(entity_store=store)
    entry_id = await log.log_update("content-sync", "artist", "A1", before, after)
    await log.reverse(entry_id, reversed_by="admin@example.com")
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from content_sync.data_management.entity_store import EntityStore
from content_sync.data_management.persistence import read_json, write_json
from content_sync.data_management.schemas import ChangeAction, ChangeLogEntry
from content_sync.errors import (
    AlreadyReversed,
    ChangeNotFound,
    NotReversible,
    StorageUnreachable,
)


class ChangeLog:
    """Audit trail of entity mutations, ordered by insertion."""

    def __init__(
        self,
        entity_store: Optional[EntityStore] = None,
        persistence_path: Optional[str] = None,
    ) -> None:
        """Initialize ChangeLog.

        Args:
            entity_store: Store the inverse mutations are applied to.
            persistence_path: Optional path to JSON file for persistence.
        """
        self._entity_store = entity_store or EntityStore()
        self._entries: dict[str, ChangeLogEntry] = {}
        self._order: list[str] = []
        self._lock = asyncio.Lock()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self._logger = structlog.get_logger().bind(component="ChangeLog")

        for row in read_json(self._persistence_path) or []:
            entry = ChangeLogEntry.model_validate(row)
            self._entries[entry.id] = entry
            self._order.append(entry.id)

    async def append(
        self,
        actor: str,
        action: ChangeAction,
        entity_type: str,
        entity_id: str,
        before: Optional[dict[str, Any]],
        after: Optional[dict[str, Any]],
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """Write an immutable entry and return its id."""
        entry = ChangeLogEntry(
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before=before,
            after=after,
            metadata=metadata or {},
            reversible=ChangeLogEntry.compute_reversible(action, before),
        )
        async with self._lock:
            self._add(entry)

        self._logger.info(
            "change_logged",
            entry_id=entry.id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
        )
        return entry.id

    async def log_insert(
        self,
        actor: str,
        entity_type: str,
        entity_id: str,
        data: dict[str, Any],
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        return await self.append(
            actor, ChangeAction.INSERT, entity_type, entity_id, None, data, metadata
        )

    async def log_update(
        self,
        actor: str,
        entity_type: str,
        entity_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        return await self.append(
            actor, ChangeAction.UPDATE, entity_type, entity_id, before, after, metadata
        )

    async def log_delete(
        self,
        actor: str,
        entity_type: str,
        entity_id: str,
        deleted_data: Optional[dict[str, Any]],
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        return await self.append(
            actor, ChangeAction.DELETE, entity_type, entity_id, deleted_data, None, metadata
        )

    async def reverse(self, entry_id: str, reversed_by: str) -> bool:
        """Undo a logged change.

        Args:
            entry_id: Entry to reverse.
            reversed_by: Actor performing the reversal.

        Returns:
            True once the inverse mutation is applied and recorded.

        Raises:
            ChangeNotFound: No entry with this id.
            NotReversible: Entry cannot be undone (delete or update without
                a before snapshot).
            AlreadyReversed: Entry was reversed before.
            StorageUnreachable: The inverse mutation could not be applied;
                the entry stays unreversed.
        """
        async with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise ChangeNotFound(entry_id)
            if not entry.reversible:
                raise NotReversible(entry_id)
            if entry.action == ChangeAction.UPDATE and entry.before is None:
                # No snapshot to restore
                raise NotReversible(entry_id)
            if entry.is_reversed:
                raise AlreadyReversed(entry_id)

            await self._apply_inverse(entry)

            reversed_entry = entry.model_copy(
                update={
                    "reversed_at": datetime.now(timezone.utc),
                    "reversed_by": reversed_by,
                }
            )
            self._entries[entry_id] = reversed_entry

            inverse = ChangeLogEntry(
                actor=reversed_by,
                action=entry.action.inverse(),
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                before=entry.after,
                after=entry.before,
                metadata={"reversal_of": entry_id},
                reversible=ChangeLogEntry.compute_reversible(
                    entry.action.inverse(), entry.after
                ),
            )
            self._add(inverse)

        self._logger.info(
            "change_reversed",
            entry_id=entry_id,
            reversal_entry_id=inverse.id,
            reversed_by=reversed_by,
        )
        return True

    async def get(self, entry_id: str) -> Optional[ChangeLogEntry]:
        async with self._lock:
            return self._entries.get(entry_id)

    async def history(self, entity_type: str, entity_id: str) -> list[ChangeLogEntry]:
        """All entries for one entity, most recent first."""
        async with self._lock:
            return [
                self._entries[eid]
                for eid in reversed(self._order)
                if self._entries[eid].entity_type == entity_type
                and self._entries[eid].entity_id == entity_id
            ]

    async def recent(
        self, limit: int = 50, entity_type: Optional[str] = None
    ) -> list[ChangeLogEntry]:
        """Latest entries across all entities, for dashboards."""
        async with self._lock:
            result: list[ChangeLogEntry] = []
            for eid in reversed(self._order):
                entry = self._entries[eid]
                if entity_type and entry.entity_type != entity_type:
                    continue
                result.append(entry)
                if len(result) >= limit:
                    break
            return result

    async def _apply_inverse(self, entry: ChangeLogEntry) -> None:
        store = self._entity_store
        try:
            if entry.action == ChangeAction.INSERT:
                await store.delete(entry.entity_type, entry.entity_id)
            elif entry.action == ChangeAction.DELETE:
                await store.insert(entry.entity_type, entry.entity_id, entry.before or {})
            else:
                await store.update(entry.entity_type, entry.entity_id, entry.before or {})
        except StorageUnreachable:
            self._logger.error("reversal_failed", entry_id=entry.id)
            raise

    def _add(self, entry: ChangeLogEntry) -> None:
        self._entries[entry.id] = entry
        self._order.append(entry.id)
        self._save()

    def _save(self) -> None:
        if not self._persistence_path:
            return
        write_json(
            self._persistence_path,
            [self._entries[eid].model_dump(mode="json") for eid in self._order],
        )
