"""Batch orchestrator driving entities through oracle -> validator -> stores.

Per entity:
1. Ask the oracle for a finding (OracleClient)
2. Classify it against the policy (validator.classify)
3. If there are corrections: write the corrected record to the entity store
   and append one update entry to the change log (the write is rolled back
   if the append fails)
4. Overwrite the entity's status row (StatusStore)
5. Offer a photo job when neither the entity nor the finding has a photo

Chunks run sequentially to bound load on the oracle; entities inside a chunk
run concurrently up to fan_out. Oracle and validator failures are counted and
never abort the run. A StorageUnreachable error stops the run and the summary
comes back as partially_failed. Cancellation is checked between chunks and
before every entity.

Usage:
    from content_sync.pipeline import BatchOrchestrator

    orchestrator = BatchOrchestrator(oracle=oracle, status_store=status_store,
                                     change_log=change_log, entity_store=entity_store)
    summary = await orchestrator.run(entities, chunk_size=10)
"""

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union

from content_sync.config.settings import PipelineConfig
from content_sync.data_management.change_log import ChangeLog
from content_sync.data_management.entity_store import EntityStore
from content_sync.data_management.schemas import (
    EntityRef,
    OracleError,
    OracleFinding,
    OracleResult,
    RunState,
    SyncStatus,
    SyncSummary,
    ValidationPolicy,
    ValidationStatus,
    VerificationRequest,
)
from content_sync.data_management.status_store import StatusStore
from content_sync.errors import StorageUnreachable
from content_sync.pipeline.validator import apply_corrections, classify
from content_sync.utils.logging import get_correlation_id, get_structured_logger

ProgressCallback = Callable[[int, int], Union[Awaitable[None], None]]


class Oracle(Protocol):
    async def fetch_finding(
        self, entity_type: str, entity_id: str, current_data: dict[str, Any]
    ) -> OracleResult: ...


class PhotoRequester(Protocol):
    def request_photo(self, request: VerificationRequest) -> bool: ...


class BatchOrchestrator:
    """Runs batches of entities through the verification pipeline.

    ``state`` and ``progress`` describe the most recently started run, for
    callers that poll instead of passing a progress callback.
    """

    def __init__(
        self,
        oracle: Oracle,
        status_store: Optional[StatusStore] = None,
        change_log: Optional[ChangeLog] = None,
        entity_store: Optional[EntityStore] = None,
        config: Optional[PipelineConfig] = None,
        photo_notifier: Optional[PhotoRequester] = None,
    ) -> None:
        """Initialize BatchOrchestrator.

        Args:
            oracle: Object with an async fetch_finding (OracleClient).
            status_store: Per-entity status rows.
            change_log: Audit trail for applied corrections.
            entity_store: Content store receiving corrected records.
            config: Thresholds, chunking and actor name.
            photo_notifier: Optional best-effort photo job requester.
        """
        self.oracle = oracle
        self.config = config or PipelineConfig()
        self.entity_store = entity_store or EntityStore()
        self.status_store = status_store or StatusStore()
        self.change_log = change_log or ChangeLog(entity_store=self.entity_store)
        self.photo_notifier = photo_notifier
        self.policy = ValidationPolicy(
            min_confidence=self.config.min_confidence,
            max_gaps=self.config.max_gaps,
        )
        self.state = RunState.IDLE
        self.progress: tuple[int, int] = (0, 0)

    async def run(
        self,
        entities: Iterable[Union[EntityRef, dict[str, Any]]],
        chunk_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncSummary:
        """Verify a batch of entities.

        Args:
            entities: EntityRef values or ``{type, id, data}`` dicts.
            chunk_size: Entities per sequential chunk (config default).
            cancel_event: Set it to stop the run early.
            progress_callback: Called with (current, total) after every entity.

        Returns:
            SyncSummary. state is completed, or partially_failed when the run
            was cancelled or hit a storage failure.
        """
        refs = [e if isinstance(e, EntityRef) else EntityRef.model_validate(e) for e in entities]
        if chunk_size is None:
            chunk_size = self.config.chunk_size
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        run_id = get_correlation_id()
        log = get_structured_logger("BatchOrchestrator", run_id=run_id)
        summary = SyncSummary(
            run_id=run_id,
            state=RunState.RUNNING,
            total=len(refs),
            started_at=datetime.now(timezone.utc),
        )
        self.state = RunState.RUNNING
        self.progress = (0, len(refs))

        log.info("sync_started", total=len(refs), chunk_size=chunk_size, fan_out=self.config.fan_out)

        try:
            for start in range(0, len(refs), chunk_size):
                if _is_set(cancel_event):
                    summary.cancelled = True
                    break

                chunk = refs[start : start + chunk_size]
                await self._process_chunk(chunk, summary, cancel_event, progress_callback, log)
                if summary.cancelled:
                    break

                log.info(
                    "chunk_complete",
                    chunk_start=start,
                    chunk_size=len(chunk),
                    processed=summary.processed,
                )

                if self.config.chunk_pause and start + chunk_size < len(refs):
                    await asyncio.sleep(self.config.chunk_pause)
        except StorageUnreachable as e:
            summary.error = str(e)
            log.error("sync_storage_failure", error=str(e), processed=summary.processed)

        if summary.error or summary.cancelled:
            summary.state = RunState.PARTIALLY_FAILED
        else:
            summary.state = RunState.COMPLETED
        summary.finished_at = datetime.now(timezone.utc)
        self.state = summary.state

        log.info(
            "sync_finished",
            state=summary.state.value,
            total=summary.total,
            processed=summary.processed,
            verified=summary.verified,
            needs_review=summary.needs_review,
            failed=summary.failed,
            with_photos=summary.with_photos,
            cancelled=summary.cancelled,
        )
        return summary

    async def _process_chunk(
        self,
        chunk: list[EntityRef],
        summary: SyncSummary,
        cancel_event: Optional[asyncio.Event],
        progress_callback: Optional[ProgressCallback],
        log: Any,
    ) -> None:
        """Process one chunk with bounded concurrency.

        A storage failure in any entity stops new entities in the chunk from
        starting and is re-raised once in-flight siblings finish.
        """
        semaphore = asyncio.Semaphore(self.config.fan_out)
        halted = asyncio.Event()

        async def process_with_semaphore(ref: EntityRef) -> None:
            async with semaphore:
                if halted.is_set():
                    return
                if _is_set(cancel_event):
                    summary.cancelled = True
                    return
                try:
                    await self._process_entity(ref, summary, log)
                except StorageUnreachable:
                    halted.set()
                    raise
                await self._report_progress(summary, progress_callback, log)

        results = await asyncio.gather(
            *[process_with_semaphore(ref) for ref in chunk],
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if isinstance(error, StorageUnreachable):
                raise error
        if errors:
            raise errors[0]

    async def _process_entity(self, ref: EntityRef, summary: SyncSummary, log: Any) -> None:
        request = ref.to_request()
        entity_log = log.bind(entity_type=ref.entity_type, entity_id=ref.entity_id)

        try:
            result = await self.oracle.fetch_finding(
                request.entity_type, request.entity_id, dict(request.current_data)
            )
            outcome = classify(result, self.policy, request.current_data)
        except Exception as e:
            entity_log.error("entity_failed", error=str(e))
            await self.status_store.upsert(
                ref.entity_type,
                ref.entity_id,
                SyncStatus.NEEDS_REVIEW,
                datetime.now(timezone.utc),
                error=f"{type(e).__name__}: {e}",
            )
            summary.failed += 1
            summary.processed += 1
            return

        if outcome.has_corrections:
            before = dict(request.current_data)
            after = apply_corrections(before, outcome.corrections)
            previous = await self.entity_store.update(ref.entity_type, ref.entity_id, after)
            try:
                await self.change_log.log_update(
                    self.config.actor,
                    ref.entity_type,
                    ref.entity_id,
                    before,
                    after,
                    metadata={
                        "run_id": summary.run_id,
                        "confidence": outcome.confidence,
                        "status": outcome.status.value,
                        "corrections": [c.model_dump(mode="json") for c in outcome.corrections],
                    },
                )
            except StorageUnreachable:
                # No audit entry, so the store must not keep the correction
                await self._restore(ref, previous, entity_log)
                raise
            summary.corrections_applied += 1

        finding = result if isinstance(result, OracleFinding) else None
        error = f"{result.kind.value}: {result.message}" if isinstance(result, OracleError) else None

        await self.status_store.upsert(
            ref.entity_type,
            ref.entity_id,
            SyncStatus.from_validation(outcome.status),
            datetime.now(timezone.utc),
            confidence=outcome.confidence,
            corrections=outcome.corrections,
            photo_url=finding.photo_url if finding else None,
            photo_source=finding.photo_source if finding else None,
            error=error,
        )

        if outcome.status == ValidationStatus.VERIFIED:
            summary.verified += 1
        else:
            summary.needs_review += 1
        if finding and finding.has_photo:
            summary.with_photos += 1
        summary.processed += 1

        if finding and not finding.has_photo and not request.has_photo():
            self._request_photo(request, summary, entity_log)

        entity_log.info(
            "entity_verified",
            status=outcome.status.value,
            confidence=outcome.confidence,
            corrections=len(outcome.corrections),
            oracle_error=error,
        )

    def _request_photo(self, request: VerificationRequest, summary: SyncSummary, log: Any) -> None:
        """Best effort: a dropped request is counted and logged, never raised."""
        if self.photo_notifier is None:
            return
        try:
            accepted = self.photo_notifier.request_photo(request)
        except Exception as e:
            log.warning("photo_request_failed", error=str(e))
            accepted = False
        if not accepted:
            summary.photo_requests_failed += 1
            log.warning("photo_request_dropped")

    async def _restore(self, ref: EntityRef, previous: Optional[dict[str, Any]], log: Any) -> None:
        """Put back the record that was in the entity store before a correction."""
        if previous is None:
            await self.entity_store.delete(ref.entity_type, ref.entity_id)
        else:
            await self.entity_store.update(ref.entity_type, ref.entity_id, previous)
        log.warning("correction_rolled_back")

    async def _report_progress(
        self,
        summary: SyncSummary,
        progress_callback: Optional[ProgressCallback],
        log: Any,
    ) -> None:
        self.progress = (summary.processed, summary.total)
        if progress_callback is None:
            return
        try:
            outcome = progress_callback(summary.processed, summary.total)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            log.error("progress_callback_failed", error=str(e))


def _is_set(event: Optional[asyncio.Event]) -> bool:
    return event is not None and event.is_set()
