"""Policy classification of oracle results.

Pure functions, no I/O:

- classify: OracleResult + policy -> ValidationOutcome
- merge_outcomes: combine two independent outcomes for the same entity,
  producing CONFLICTING when they correct one field to different values
- apply_corrections: produce the corrected record, supporting dotted paths

Classification rule:
    VERIFIED      iff confidence >= min_confidence and corrections <= max_gaps
    NEEDS_REVIEW  otherwise, and always for an OracleError
"""

import copy
from typing import Any, Optional

from content_sync.data_management.schemas import (
    Correction,
    OracleError,
    OracleResult,
    ValidationOutcome,
    ValidationPolicy,
    ValidationStatus,
)

_MISSING = object()


def classify(
    result: OracleResult,
    policy: ValidationPolicy,
    current_data: Optional[dict[str, Any]] = None,
) -> ValidationOutcome:
    """Classify one oracle result.

    Args:
        result: OracleFinding or OracleError from the oracle client.
        policy: Confidence and gap thresholds.
        current_data: Entity data before correction, used to fill in the
            ``original`` of each correction when the oracle omitted it.

    Returns:
        ValidationOutcome. An OracleError always yields NEEDS_REVIEW with no
        corrections.
    """
    if isinstance(result, OracleError):
        return ValidationOutcome(status=ValidationStatus.NEEDS_REVIEW, confidence=0.0)

    data = current_data or {}
    reported = {c.field: c for c in result.corrections}
    corrections: list[Correction] = []
    for field, corrected in result.suggested_updates.items():
        known = reported.get(field)
        original = _get_path(data, field)
        if original is _MISSING:
            original = known.original if known else None
        corrections.append(
            Correction(
                field=field,
                original=original,
                corrected=corrected,
                reason=result.reason_for(field),
            )
        )

    passes = (
        result.confidence >= policy.min_confidence
        and len(corrections) <= policy.max_gaps
    )
    return ValidationOutcome(
        status=ValidationStatus.VERIFIED if passes else ValidationStatus.NEEDS_REVIEW,
        corrections=corrections,
        confidence=result.confidence,
    )


def merge_outcomes(
    first: ValidationOutcome, second: ValidationOutcome
) -> ValidationOutcome:
    """Merge two independent outcomes for the same entity.

    Corrections are unioned by field. For a field corrected by both, the
    higher-confidence outcome's correction comes first; on equal confidence
    ``first`` wins. If the two corrected values differ the merged status is
    CONFLICTING and both corrections are kept so a reviewer sees each side.
    Without a conflict the stricter status wins (NEEDS_REVIEW over VERIFIED).
    """
    if second.confidence > first.confidence:
        preferred, other = second, first
    else:
        preferred, other = first, second

    merged: dict[str, list[Correction]] = {}
    for correction in preferred.corrections:
        merged.setdefault(correction.field, []).append(correction)

    conflicting = False
    for correction in other.corrections:
        existing = merged.get(correction.field)
        if not existing:
            merged[correction.field] = [correction]
        elif existing[0].corrected != correction.corrected:
            conflicting = True
            existing.append(correction)

    corrections = [c for group in merged.values() for c in group]
    confidence = max(first.confidence, second.confidence)

    if conflicting or ValidationStatus.CONFLICTING in (first.status, second.status):
        status = ValidationStatus.CONFLICTING
    elif ValidationStatus.NEEDS_REVIEW in (first.status, second.status):
        status = ValidationStatus.NEEDS_REVIEW
    else:
        status = ValidationStatus.VERIFIED

    return ValidationOutcome(status=status, corrections=corrections, confidence=confidence)


def apply_corrections(
    data: dict[str, Any], corrections: list[Correction]
) -> dict[str, Any]:
    """Return a corrected copy of ``data``.

    A dotted field (``image.url``) walks into nested dicts, creating missing
    levels. The input is never mutated.
    """
    corrected = copy.deepcopy(data)
    for correction in corrections:
        parts = correction.field.split(".")
        current = corrected
        for part in parts[:-1]:
            child = current.get(part)
            if not isinstance(child, dict):
                child = {}
                current[part] = child
            current = child
        current[parts[-1]] = copy.deepcopy(correction.corrected)
    return corrected


def _get_path(data: dict[str, Any], field: str) -> Any:
    current: Any = data
    for part in field.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current
