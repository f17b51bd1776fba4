"""Tests for verification, change log and sync schemas."""

import pytest
from pydantic import ValidationError

from content_sync.data_management.schemas import (
    ChangeAction,
    ChangeLogEntry,
    EntityRef,
    OracleFinding,
    SyncStatus,
    SyncSummary,
    ValidationStatus,
    VerificationRequest,
)


class TestEntityRef:
    def test_wire_keys_and_field_names(self) -> None:
        by_alias = EntityRef.model_validate({"type": "artist", "id": "A1", "data": {"name": "X"}})
        by_name = EntityRef(entity_type="artist", entity_id="A1")

        assert by_alias.key == ("artist", "A1")
        assert by_name.key == ("artist", "A1")
        assert by_name.data == {}

    def test_numeric_id_coerced(self) -> None:
        ref = EntityRef.model_validate({"type": "venue", "id": 42})
        assert ref.entity_id == "42"

    def test_missing_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EntityRef.model_validate({"id": "A1"})


class TestVerificationRequest:
    @pytest.mark.parametrize(
        "data,expected",
        [
            ({"name": "X"}, False),
            ({"image": {"url": "https://img/x.jpg"}}, True),
            ({"image": {"url": ""}}, False),
            ({"imageUrl": "https://img/x.jpg"}, True),
            ({"photoUrl": "https://img/x.jpg"}, True),
        ],
    )
    def test_has_photo(self, data, expected) -> None:
        request = VerificationRequest(entity_type="artist", entity_id="A1", current_data=data)
        assert request.has_photo() is expected

    def test_is_frozen(self) -> None:
        request = VerificationRequest(entity_type="artist", entity_id="A1")
        with pytest.raises(ValidationError):
            request.entity_id = "A2"


class TestOracleFinding:
    @pytest.mark.parametrize(
        "raw,expected",
        [(0.85, 0.85), (1.7, 1.0), (-0.2, 0.0), ("0.5", 0.5), ("high", 0.0), (None, 0.0), (float("nan"), 0.0)],
    )
    def test_confidence_clamped(self, raw, expected) -> None:
        assert OracleFinding(confidence=raw).confidence == expected


class TestChangeLogEntry:
    def test_inverse_actions(self) -> None:
        assert ChangeAction.INSERT.inverse() == ChangeAction.DELETE
        assert ChangeAction.DELETE.inverse() == ChangeAction.INSERT
        assert ChangeAction.UPDATE.inverse() == ChangeAction.UPDATE

    def test_compute_reversible(self) -> None:
        assert ChangeLogEntry.compute_reversible(ChangeAction.DELETE, None) is False
        assert ChangeLogEntry.compute_reversible(ChangeAction.DELETE, {"name": "x"}) is True
        assert ChangeLogEntry.compute_reversible(ChangeAction.INSERT, None) is True


class TestSyncSchemas:
    def test_conflicting_maps_to_needs_review(self) -> None:
        assert SyncStatus.from_validation(ValidationStatus.VERIFIED) == SyncStatus.VERIFIED
        assert SyncStatus.from_validation(ValidationStatus.NEEDS_REVIEW) == SyncStatus.NEEDS_REVIEW
        assert SyncStatus.from_validation(ValidationStatus.CONFLICTING) == SyncStatus.NEEDS_REVIEW

    def test_summary_report_is_json_ready(self) -> None:
        report = SyncSummary(run_id="r1", total=3, verified=2).to_report()
        assert report["run_id"] == "r1"
        assert report["state"] == "idle"
        assert report["verified"] == 2
