"""Data management package for the content sync pipeline.

Storage adapters:
- EntityStore: current data of each directory entity
- StatusStore: per-entity verification status for dashboards
- ChangeLog: append-only, reversible audit trail of mutations
"""

from content_sync.data_management.change_log import ChangeLog
from content_sync.data_management.entity_store import EntityStore
from content_sync.data_management.status_store import StatusStore

__all__ = [
    "ChangeLog",
    "EntityStore",
    "StatusStore",
]
