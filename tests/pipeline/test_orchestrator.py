"""Tests for BatchOrchestrator.

Tests cover:
- Single entity happy path (artist gains a country)
- Oracle giving up on an entity (needs review, no change log entry)
- Batch isolation when one entity raises inside the oracle
- Change log completeness for every corrected entity
- Storage failure and cancellation ending in partially_failed
- Progress reporting and best-effort photo requests
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from content_sync.config.settings import PipelineConfig
from content_sync.data_management import ChangeLog, EntityStore, StatusStore
from content_sync.data_management.schemas import (
    ChangeAction,
    EntityRef,
    OracleError,
    OracleErrorKind,
    OracleFinding,
    RunState,
    SyncStatus,
    VerificationRequest,
)
from content_sync.errors import StorageUnreachable
from content_sync.pipeline import BatchOrchestrator


class FakeOracle:
    """Returns canned results per entity id; exceptions are raised."""

    def __init__(self, results=None, default=None):
        self.results = results or {}
        self.default = default or OracleFinding(confidence=0.9, has_photo=True, photo_url="https://img/x.jpg")
        self.calls = []

    async def fetch_finding(self, entity_type, entity_id, current_data):
        self.calls.append((entity_type, entity_id))
        result = self.results.get(entity_id, self.default)
        if isinstance(result, Exception):
            raise result
        return result


class FailingStatusStore(StatusStore):
    """Status store whose writes start failing after ``ok_writes`` upserts."""

    def __init__(self, ok_writes: int):
        super().__init__()
        self.ok_writes = ok_writes

    async def upsert(self, *args, **kwargs):
        if self.ok_writes <= 0:
            raise StorageUnreachable("status store offline")
        self.ok_writes -= 1
        return await super().upsert(*args, **kwargs)


class RecordingNotifier:
    def __init__(self, accept: bool = True):
        self.accept = accept
        self.requests: list[VerificationRequest] = []

    def request_photo(self, request: VerificationRequest) -> bool:
        self.requests.append(request)
        return self.accept


class RaisingNotifier:
    def request_photo(self, request: VerificationRequest) -> bool:
        raise RuntimeError("queue full")


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def entity_store() -> EntityStore:
    return EntityStore()


@pytest.fixture
def status_store() -> StatusStore:
    return StatusStore()


@pytest.fixture
def change_log(entity_store: EntityStore) -> ChangeLog:
    return ChangeLog(entity_store=entity_store)


def make_orchestrator(oracle, status_store, change_log, entity_store, **kwargs) -> BatchOrchestrator:
    config = kwargs.pop("config", PipelineConfig(fan_out=3))
    return BatchOrchestrator(
        oracle=oracle,
        status_store=status_store,
        change_log=change_log,
        entity_store=entity_store,
        config=config,
        **kwargs,
    )


def artists(n: int) -> list[dict]:
    return [{"type": "artist", "id": f"A{i}", "data": {"name": f"Artist {i}"}} for i in range(n)]


# ── Single Entity Tests ──────────────────────────────────────────────────


class TestSingleEntity:
    @pytest.mark.asyncio
    async def test_artist_gains_country(self, entity_store, status_store, change_log) -> None:
        oracle = FakeOracle(
            {"A1": OracleFinding(confidence=0.9, suggested_updates={"country": "Germany"})}
        )
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)

        summary = await orchestrator.run(
            [{"type": "artist", "id": "A1", "data": {"name": "DJ X", "country": None}}]
        )

        assert summary.state == RunState.COMPLETED
        assert summary.total == 1
        assert summary.verified == 1

        row = await status_store.get("artist", "A1")
        assert row.status == SyncStatus.VERIFIED
        assert row.last_synced_at is not None

        entries = await change_log.history("artist", "A1")
        assert len(entries) == 1
        assert entries[0].action == ChangeAction.UPDATE
        assert entries[0].before == {"name": "DJ X", "country": None}
        assert entries[0].after == {"name": "DJ X", "country": "Germany"}
        assert entries[0].metadata["run_id"] == summary.run_id

        assert await entity_store.get("artist", "A1") == {"name": "DJ X", "country": "Germany"}

    @pytest.mark.asyncio
    async def test_oracle_timeouts_count_as_needs_review(
        self, entity_store, status_store, change_log
    ) -> None:
        oracle = FakeOracle(
            {
                "V2": OracleError(
                    kind=OracleErrorKind.ORACLE_UNAVAILABLE,
                    message="timeout",
                    attempts=3,
                )
            }
        )
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)

        summary = await orchestrator.run([{"type": "venue", "id": "V2", "data": {"name": "Tresor"}}])

        assert summary.state == RunState.COMPLETED
        assert summary.failed == 0
        assert summary.needs_review == 1

        row = await status_store.get("venue", "V2")
        assert row.status == SyncStatus.NEEDS_REVIEW
        assert "oracle_unavailable" in row.error
        assert await change_log.history("venue", "V2") == []

    @pytest.mark.asyncio
    async def test_low_confidence_correction_is_still_logged(
        self, entity_store, status_store, change_log
    ) -> None:
        oracle = FakeOracle(
            {"L1": OracleFinding(confidence=0.3, suggested_updates={"founded": 1991})}
        )
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)

        summary = await orchestrator.run([{"type": "label", "id": "L1", "data": {"name": "Tresor Records"}}])

        assert summary.needs_review == 1
        assert summary.corrections_applied == 1
        row = await status_store.get("label", "L1")
        assert row.status == SyncStatus.NEEDS_REVIEW
        assert row.corrections[0].field == "founded"


# ── Batch Tests ──────────────────────────────────────────────────────────


class TestBatchIsolation:
    @pytest.mark.asyncio
    async def test_one_raising_entity_does_not_abort_batch(
        self, entity_store, status_store, change_log
    ) -> None:
        oracle = FakeOracle({"A3": RuntimeError("boom")})
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)

        summary = await orchestrator.run(artists(7), chunk_size=3)

        assert summary.state == RunState.COMPLETED
        assert summary.total == 7
        assert summary.processed == 7
        assert summary.failed == 1
        assert summary.verified == 6

        failed_row = await status_store.get("artist", "A3")
        assert failed_row.status == SyncStatus.NEEDS_REVIEW
        assert "boom" in failed_row.error

        for i in range(7):
            if i == 3:
                continue
            row = await status_store.get("artist", f"A{i}")
            assert row.status == SyncStatus.VERIFIED
            assert row.error is None

    @pytest.mark.asyncio
    async def test_every_corrected_entity_has_one_update_entry(
        self, entity_store, status_store, change_log
    ) -> None:
        oracle = FakeOracle(
            {
                "A0": OracleFinding(confidence=0.95, suggested_updates={"country": "DE"}),
                "A2": OracleFinding(confidence=0.4, suggested_updates={"image.url": "https://img/a2.jpg"}),
                "A4": OracleFinding(confidence=0.8, suggested_updates={"active": False, "city": "Berlin"}),
            }
        )
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)
        batch = artists(5)

        summary = await orchestrator.run(batch, chunk_size=2)

        assert summary.corrections_applied == 3
        for item in batch:
            entries = await change_log.history("artist", item["id"])
            if item["id"] in ("A0", "A2", "A4"):
                assert len(entries) == 1
                entry = entries[0]
                assert entry.action == ChangeAction.UPDATE
                assert entry.before == item["data"]
                assert entry.after == await entity_store.get("artist", item["id"])
            else:
                assert entries == []

        assert (await entity_store.get("artist", "A2"))["image"] == {"url": "https://img/a2.jpg"}

    @pytest.mark.asyncio
    async def test_accepts_entity_refs(self, entity_store, status_store, change_log) -> None:
        orchestrator = make_orchestrator(FakeOracle(), status_store, change_log, entity_store)

        summary = await orchestrator.run([EntityRef(type="crew", id=7, data={"name": "Crew"})])

        assert summary.verified == 1
        assert (await status_store.get("crew", "7")).status == SyncStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_empty_batch_completes(self, entity_store, status_store, change_log) -> None:
        orchestrator = make_orchestrator(FakeOracle(), status_store, change_log, entity_store)

        summary = await orchestrator.run([])

        assert summary.state == RunState.COMPLETED
        assert summary.total == 0
        assert orchestrator.state == RunState.COMPLETED

    @pytest.mark.asyncio
    async def test_invalid_chunk_size_rejected(self, entity_store, status_store, change_log) -> None:
        orchestrator = make_orchestrator(FakeOracle(), status_store, change_log, entity_store)

        with pytest.raises(ValueError):
            await orchestrator.run(artists(2), chunk_size=-1)

    @pytest.mark.asyncio
    async def test_zero_chunk_size_rejected(self, entity_store, status_store, change_log) -> None:
        orchestrator = make_orchestrator(FakeOracle(), status_store, change_log, entity_store)

        with pytest.raises(ValueError):
            await orchestrator.run(artists(2), chunk_size=0)


# ── Run Termination Tests ────────────────────────────────────────────────


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_storage_failure_stops_run(self, entity_store, change_log) -> None:
        status_store = FailingStatusStore(ok_writes=2)
        oracle = FakeOracle()
        orchestrator = make_orchestrator(
            oracle, status_store, change_log, entity_store, config=PipelineConfig(fan_out=1)
        )

        summary = await orchestrator.run(artists(6), chunk_size=2)

        assert summary.state == RunState.PARTIALLY_FAILED
        assert "status store offline" in summary.error
        assert summary.processed == 2
        assert len(oracle.calls) == 3
        assert orchestrator.state == RunState.PARTIALLY_FAILED

    @pytest.mark.asyncio
    async def test_change_log_failure_stops_run(self, entity_store, status_store) -> None:
        change_log = AsyncMock(spec=ChangeLog)
        change_log.log_update.side_effect = StorageUnreachable("change log offline")
        oracle = FakeOracle(default=OracleFinding(confidence=0.9, suggested_updates={"country": "DE"}))
        orchestrator = make_orchestrator(
            oracle, status_store, change_log, entity_store, config=PipelineConfig(fan_out=1)
        )

        summary = await orchestrator.run(artists(3))

        assert summary.state == RunState.PARTIALLY_FAILED
        assert summary.error == "change log offline"
        assert summary.processed == 0
        assert change_log.log_update.await_count == 1
        assert await status_store.get("artist", "A0") is None
        assert await entity_store.get("artist", "A0") is None

    @pytest.mark.asyncio
    async def test_change_log_failure_rolls_back_correction(self, status_store) -> None:
        entity_store = EntityStore()
        await entity_store.insert("artist", "A0", {"name": "X"})
        change_log = AsyncMock(spec=ChangeLog)
        change_log.log_update.side_effect = StorageUnreachable("change log offline")
        oracle = FakeOracle(default=OracleFinding(confidence=0.9, suggested_updates={"country": "DE"}))
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)

        summary = await orchestrator.run([{"type": "artist", "id": "A0", "data": {"name": "X"}}])

        assert summary.state == RunState.PARTIALLY_FAILED
        assert summary.corrections_applied == 0
        assert await entity_store.get("artist", "A0") == {"name": "X"}

    @pytest.mark.asyncio
    async def test_cancel_between_chunks(self, entity_store, status_store, change_log) -> None:
        cancel = asyncio.Event()

        def on_progress(current: int, total: int) -> None:
            if current == 2:
                cancel.set()

        orchestrator = make_orchestrator(FakeOracle(), status_store, change_log, entity_store)

        summary = await orchestrator.run(
            artists(6), chunk_size=2, cancel_event=cancel, progress_callback=on_progress
        )

        assert summary.state == RunState.PARTIALLY_FAILED
        assert summary.cancelled is True
        assert summary.processed == 2
        assert summary.total == 6
        assert await status_store.get("artist", "A2") is None

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, entity_store, status_store, change_log) -> None:
        cancel = asyncio.Event()
        cancel.set()
        oracle = FakeOracle()
        orchestrator = make_orchestrator(oracle, status_store, change_log, entity_store)

        summary = await orchestrator.run(artists(3), cancel_event=cancel)

        assert summary.cancelled is True
        assert summary.processed == 0
        assert oracle.calls == []


# ── Progress and Photo Tests ─────────────────────────────────────────────


class TestProgressAndPhotos:
    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, entity_store, status_store, change_log) -> None:
        seen: list[tuple[int, int]] = []

        async def on_progress(current: int, total: int) -> None:
            seen.append((current, total))

        orchestrator = make_orchestrator(FakeOracle(), status_store, change_log, entity_store)

        await orchestrator.run(artists(5), chunk_size=2, progress_callback=on_progress)

        assert [c for c, _ in seen] == [1, 2, 3, 4, 5]
        assert all(total == 5 for _, total in seen)
        assert orchestrator.progress == (5, 5)

    @pytest.mark.asyncio
    async def test_photo_requested_when_missing(self, entity_store, status_store, change_log) -> None:
        notifier = RecordingNotifier()
        oracle = FakeOracle(
            {
                "A0": OracleFinding(confidence=0.9),
                "A1": OracleFinding(confidence=0.9, photo_url="https://img/a1.jpg", has_photo=True),
            }
        )
        orchestrator = make_orchestrator(
            oracle, status_store, change_log, entity_store, photo_notifier=notifier
        )
        batch = artists(3)
        batch[2]["data"]["image"] = {"url": "https://img/a2.jpg"}
        oracle.results["A2"] = OracleFinding(confidence=0.9)

        summary = await orchestrator.run(batch)

        assert [r.entity_id for r in notifier.requests] == ["A0"]
        assert summary.with_photos == 1
        assert summary.photo_requests_failed == 0
        assert (await status_store.get("artist", "A1")).photo_url == "https://img/a1.jpg"

    @pytest.mark.asyncio
    async def test_dropped_photo_request_is_counted(
        self, entity_store, status_store, change_log
    ) -> None:
        notifier = RecordingNotifier(accept=False)
        oracle = FakeOracle(default=OracleFinding(confidence=0.9))
        orchestrator = make_orchestrator(
            oracle, status_store, change_log, entity_store, photo_notifier=notifier
        )

        summary = await orchestrator.run(artists(2))

        assert summary.state == RunState.COMPLETED
        assert summary.photo_requests_failed == 2

    @pytest.mark.asyncio
    async def test_no_photo_request_after_oracle_error(
        self, entity_store, status_store, change_log
    ) -> None:
        notifier = RecordingNotifier()
        oracle = FakeOracle(
            default=OracleError(kind=OracleErrorKind.MALFORMED_RESPONSE, attempts=3)
        )
        orchestrator = make_orchestrator(
            oracle, status_store, change_log, entity_store, photo_notifier=notifier
        )

        await orchestrator.run(artists(2))

        assert notifier.requests == []

    @pytest.mark.asyncio
    async def test_raising_photo_notifier_does_not_abort_run(
        self, entity_store, status_store, change_log
    ) -> None:
        notifier = RaisingNotifier()
        oracle = FakeOracle(default=OracleFinding(confidence=0.9))
        orchestrator = make_orchestrator(
            oracle, status_store, change_log, entity_store, photo_notifier=notifier
        )

        summary = await orchestrator.run(artists(2))

        assert summary.state == RunState.COMPLETED
        assert summary.processed == 2
        assert summary.photo_requests_failed == 2
