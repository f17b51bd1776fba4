"""Verification domain schemas: requests, oracle findings and outcomes.

Flow of values through one pipeline pass:

    EntityRef -> VerificationRequest -> OracleResult -> ValidationOutcome

OracleResult is a tagged union: either an OracleFinding (the oracle answered
with parseable JSON) or an OracleError (the retry budget ran out, or the body
was not JSON). Callers branch with isinstance instead of probing optional
keys on a raw payload.

Only the outcome is persisted (into the Status Store and, when it carries
corrections, into the Change Log). Requests and findings are transient.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityRef(BaseModel):
    """Caller-supplied unit of work: ``{type, id, data}``.

    Accepts either the wire keys (``type``/``id``) or the field names.
    Numeric IDs are coerced to strings so keys stay comparable.
    """

    entity_type: str = Field(..., alias="type", min_length=1)
    entity_id: str = Field(..., alias="id", min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("entity_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_type, self.entity_id)

    def to_request(self) -> "VerificationRequest":
        return VerificationRequest(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            current_data=dict(self.data),
        )


class VerificationRequest(BaseModel):
    """Immutable request for one oracle call. Never persisted."""

    entity_type: str
    entity_id: str
    current_data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def has_photo(self) -> bool:
        """True when the record already carries an image reference."""
        image = self.current_data.get("image")
        if isinstance(image, dict) and image.get("url"):
            return True
        return bool(
            self.current_data.get("imageUrl") or self.current_data.get("photoUrl")
        )


class Correction(BaseModel):
    """Single field correction proposed by the oracle."""

    field: str = Field(..., min_length=1, description="Field name, dotted for nesting")
    original: Any = Field(default=None, description="Value before correction")
    corrected: Any = Field(..., description="Suggested value")
    reason: str = Field(default="", description="Why the value is wrong, with source")


class OracleFinding(BaseModel):
    """Parsed oracle answer for one entity.

    ``confidence`` is clamped into [0, 1]; a missing value becomes 0.0 so a
    malformed answer can never pass the confidence gate by accident.
    """

    suggested_updates: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    has_photo: bool = False
    verified: bool = False
    corrections: list[Correction] = Field(default_factory=list)
    photo_url: Optional[str] = None
    photo_source: Optional[str] = None
    assessment: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return max(0.0, min(1.0, number))

    def reason_for(self, field: str) -> str:
        for correction in self.corrections:
            if correction.field == field:
                return correction.reason
        return ""


class OracleErrorKind(str, Enum):
    """Why the oracle produced no finding."""

    ORACLE_UNAVAILABLE = "oracle_unavailable"
    MALFORMED_RESPONSE = "malformed_oracle_response"


class OracleError(BaseModel):
    """Error half of the oracle's tagged result."""

    kind: OracleErrorKind
    message: str = ""
    attempts: int = Field(default=0, ge=0)


OracleResult = Union[OracleFinding, OracleError]


class ValidationStatus(str, Enum):
    """Policy classification of an oracle result.

    VERIFIED: confident enough and few enough gaps.
    NEEDS_REVIEW: anything else, including oracle failure.
    CONFLICTING: two independent findings disagree on the same field.
    """

    VERIFIED = "verified"
    NEEDS_REVIEW = "needs_review"
    CONFLICTING = "conflicting"


class ValidationPolicy(BaseModel):
    """Thresholds applied by the validator."""

    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    max_gaps: int = Field(default=3, ge=0)


class ValidationOutcome(BaseModel):
    """Classified result for one entity."""

    status: ValidationStatus
    corrections: list[Correction] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def has_corrections(self) -> bool:
        return bool(self.corrections)
