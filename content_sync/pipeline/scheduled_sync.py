"""Periodic re-verification of the stalest entities.

Picks the rows with the oldest last_synced_at (never-synced first) from the
status store, loads their current data from the entity store and feeds them
to the orchestrator one at a time with a short pause in between.
"""

from typing import Optional

from content_sync.data_management.schemas import EntityRef, SyncSummary
from content_sync.pipeline.orchestrator import BatchOrchestrator
from content_sync.utils.logging import get_structured_logger


class ScheduledSync:
    """Re-sync job run from cron or the ``rescan`` command."""

    def __init__(self, orchestrator: BatchOrchestrator, pause: float = 0.5) -> None:
        """
        Initialize ScheduledSync.

        Args:
            orchestrator: Orchestrator whose stores are read and updated
            pause: Seconds between entities
        """
        self.orchestrator = orchestrator
        self.pause = pause
        self._logger = get_structured_logger("ScheduledSync")

    async def select(self, limit: int = 50) -> list[EntityRef]:
        """Stalest entities that still have data in the entity store."""
        rows = await self.orchestrator.status_store.stalest(limit)
        refs: list[EntityRef] = []
        for row in rows:
            data = await self.orchestrator.entity_store.get(row.entity_type, row.entity_id)
            if data is None:
                self._logger.warning(
                    "rescan_entity_missing",
                    entity_type=row.entity_type,
                    entity_id=row.entity_id,
                )
                continue
            refs.append(EntityRef(type=row.entity_type, id=row.entity_id, data=data))
        return refs

    async def run(self, limit: int = 50) -> Optional[SyncSummary]:
        """
        Re-verify up to ``limit`` entities.

        Returns:
            Summary of the run, or None when nothing was due
        """
        refs = await self.select(limit)
        if not refs:
            self._logger.info("rescan_nothing_due", limit=limit)
            return None

        self._logger.info("rescan_started", count=len(refs), limit=limit)

        orchestrator = self.orchestrator
        previous = orchestrator.config
        orchestrator.config = previous.model_copy(update={"chunk_pause": self.pause})
        try:
            return await orchestrator.run(refs, chunk_size=1)
        finally:
            orchestrator.config = previous
