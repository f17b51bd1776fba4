"""Content store for directory entities (artists, venues, labels, ...).

Holds the current data of each entity keyed by (entity_type, entity_id).
The pipeline writes corrected records here and the change log uses it to
perform inverse mutations when a change is reversed.

Usage:
    from content_sync.data_management.entity_store import EntityStore

    store = EntityStore()
    await store.insert("artist", "A1", {"name": "DJ X"})
    data = await store.get("artist", "A1")
"""

import asyncio
import copy
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog

from content_sync.data_management.persistence import read_json, write_json
from content_sync.data_management.schemas import EntityRef


class EntityStore:
    """In-memory entity storage with optional JSON persistence.

    Data structure:
    {
        entity_type: {
            entity_id: {...record fields...},
            ...
        },
        ...
    }

    Returned records are deep copies; callers cannot mutate stored state.
    """

    def __init__(self, persistence_path: Optional[str] = None) -> None:
        """Initialize EntityStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._entities: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self._logger = structlog.get_logger().bind(component="EntityStore")

        loaded = read_json(self._persistence_path)
        if loaded:
            self._entities = loaded

    async def get(self, entity_type: str, entity_id: str) -> Optional[dict[str, Any]]:
        async with self._lock:
            record = self._entities.get(entity_type, {}).get(entity_id)
            return copy.deepcopy(record) if record is not None else None

    async def insert(
        self, entity_type: str, entity_id: str, data: dict[str, Any]
    ) -> None:
        """Create a record. An existing record with the same key is replaced."""
        async with self._lock:
            bucket = self._entities.setdefault(entity_type, {})
            if entity_id in bucket:
                self._logger.warning(
                    "insert_replaced_existing",
                    entity_type=entity_type,
                    entity_id=entity_id,
                )
            bucket[entity_id] = copy.deepcopy(data)
            self._save()
            self._logger.debug("entity_inserted", entity_type=entity_type, entity_id=entity_id)

    async def update(
        self, entity_type: str, entity_id: str, data: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Replace a record wholesale.

        Returns:
            The previous record, or None if the entity did not exist.
        """
        async with self._lock:
            bucket = self._entities.setdefault(entity_type, {})
            previous = bucket.get(entity_id)
            bucket[entity_id] = copy.deepcopy(data)
            self._save()
            self._logger.debug("entity_updated", entity_type=entity_type, entity_id=entity_id)
            return previous

    async def delete(self, entity_type: str, entity_id: str) -> Optional[dict[str, Any]]:
        """Remove a record.

        Returns:
            The removed record, or None if it did not exist.
        """
        async with self._lock:
            bucket = self._entities.get(entity_type, {})
            removed = bucket.pop(entity_id, None)
            if removed is not None:
                if not bucket:
                    self._entities.pop(entity_type, None)
                self._save()
                self._logger.debug("entity_deleted", entity_type=entity_type, entity_id=entity_id)
            return removed

    async def all(self, entity_type: Optional[str] = None) -> list[EntityRef]:
        """List entities, optionally for one type, as EntityRef values."""
        async with self._lock:
            types = [entity_type] if entity_type else sorted(self._entities)
            return [
                EntityRef(type=t, id=eid, data=copy.deepcopy(data))
                for t in types
                for eid, data in self._entities.get(t, {}).items()
            ]

    async def load_entities(self, refs: Iterable[EntityRef]) -> int:
        """Bulk import caller entities (e.g. a seed file). Returns the count."""
        count = 0
        async with self._lock:
            for ref in refs:
                self._entities.setdefault(ref.entity_type, {})[ref.entity_id] = copy.deepcopy(ref.data)
                count += 1
            self._save()
        self._logger.info("entities_loaded", count=count)
        return count

    def _save(self) -> None:
        write_json(self._persistence_path, self._entities)
