"""Verification pipeline: classification, batch orchestration and re-sync."""

from content_sync.pipeline.orchestrator import BatchOrchestrator
from content_sync.pipeline.scheduled_sync import ScheduledSync
from content_sync.pipeline.validator import apply_corrections, classify, merge_outcomes

__all__ = [
    "BatchOrchestrator",
    "ScheduledSync",
    "apply_corrections",
    "classify",
    "merge_outcomes",
]
