"""
Pydantic models for parcel records — a fixed core schema at the boundary.

Each record type declares the fields the engine interprets. Anything else an
upstream system sends is kept verbatim as pass-through data (``extra``) and
handed back by ``to_document()``, never read by the verification rules. The
document a record was parsed from is kept as-is for the registry
(``raw_document()``).
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    model_validator,
)

from .exceptions import ComputationFailure


# ─── Wire keys ──────────────────────────────────────────────────────

ADMINISTRATIVE_KEYS: frozenset[str] = frozenset({
    "state", "district", "survey_number", "survey_no", "village", "taluk",
    "owner_name", "patta_number", "khata_number", "area_hectares",
})

SURVEY_KEYS: frozenset[str] = frozenset({
    "survey_id", "fmb_id", "geometry", "area_hectares", "state", "district",
})

# Upstream field names → model field names
WIRE_ALIASES: dict[str, str] = {
    "survey_no": "survey_number",
    "fmb_id": "survey_id",
}


def canonical_field_name(name: str) -> str:
    """Map an upstream wire name (``survey_no``, ``fmb_id``) to its model field."""
    return WIRE_ALIASES.get(name, name)


# ─── Severity Levels ────────────────────────────────────────────────


class Severity(str, Enum):
    """Severity of a reconciliation finding."""

    ERROR = "ERROR"  # Blocks registration
    WARNING = "WARNING"  # Costs score, needs human review


# ─── Records ────────────────────────────────────────────────────────


class Geometry(BaseModel):
    """GeoJSON-like geometry. Only a Polygon's outer ring is interpreted."""

    type: str
    coordinates: Any = None


class _PassThroughRecord(BaseModel):
    """Base for records that carry unrecognized upstream keys untouched.

    Unknown keys (including one literally named ``extra``) live in a private
    attribute, so no upstream key can collide with it.
    """

    model_config = ConfigDict(populate_by_name=True)

    known_keys: ClassVar[frozenset[str]] = frozenset()

    _extra: dict[str, Any] = PrivateAttr(default_factory=dict)
    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @model_validator(mode="wrap")
    @classmethod
    def _collect_extra(cls, data: Any, handler: Any) -> Any:
        if not isinstance(data, dict):
            return handler(data)
        record = handler({k: v for k, v in data.items() if k in cls.known_keys})
        record._extra = copy.deepcopy(
            {k: v for k, v in data.items() if k not in cls.known_keys}
        )
        record._raw = copy.deepcopy(data)
        return record

    @property
    def extra(self) -> dict[str, Any]:
        """Upstream keys the engine does not interpret."""
        return self._extra

    def raw_document(self) -> dict[str, Any]:
        """A copy of the document exactly as it was received."""
        return copy.deepcopy(self._raw)

    def to_document(self) -> dict[str, Any]:
        """Serialize back to a plain document, restoring pass-through keys."""
        doc = self.model_dump(exclude_none=True)
        return {**copy.deepcopy(self._extra), **doc}


class AdministrativeRecord(_PassThroughRecord):
    """Textual government land record (state, district, survey number, owner)."""

    known_keys: ClassVar[frozenset[str]] = ADMINISTRATIVE_KEYS

    state: str
    district: str
    survey_number: str = Field(
        validation_alias=AliasChoices("survey_number", "survey_no")
    )
    village: Optional[str] = None
    taluk: Optional[str] = None
    owner_name: Optional[str] = None
    patta_number: Optional[str] = None
    khata_number: Optional[str] = None
    area_hectares: Optional[float] = Field(default=None, ge=0)

    def field_value(self, name: str) -> Any:
        """Look up a configured field by name, falling back to pass-through data.

        Wire names such as ``survey_no`` resolve to their model field.
        """
        field = canonical_field_name(name)
        if field in type(self).model_fields:
            return getattr(self, field)
        return self._extra.get(name)


class SurveyRecord(_PassThroughRecord):
    """Field-survey record carrying the parcel boundary."""

    known_keys: ClassVar[frozenset[str]] = SURVEY_KEYS

    survey_id: str = Field(validation_alias=AliasChoices("survey_id", "fmb_id"))
    geometry: Optional[Geometry] = None
    area_hectares: Optional[float] = Field(default=None, ge=0)
    state: Optional[str] = None
    district: Optional[str] = None


# ─── Configuration ──────────────────────────────────────────────────


class VerificationConfig(BaseModel):
    """Per-call verification settings. Frozen: override by building a new one."""

    model_config = ConfigDict(frozen=True)

    area_tolerance_percent: float = Field(default=5.0, ge=0)
    geometry_tolerance_meters: float = Field(default=10.0, ge=0)  # Reserved
    required_fields: tuple[str, ...] = (
        "state", "district", "survey_number", "survey_id",
    )
    optional_fields: tuple[str, ...] = (
        "village", "taluk", "area_hectares", "owner_name",
    )


# ─── Results ────────────────────────────────────────────────────────


class StructuralReport(BaseModel):
    """Outcome of a single-document structural check."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)


class AreaComputation(BaseModel):
    """Explicit success/failure result of deriving an area from geometry."""

    hectares: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.hectares is not None

    def unwrap(self) -> float:
        """Return the area, or raise the failure this result carries."""
        if not self.ok:
            raise ComputationFailure(self.error or "Area is unavailable")
        assert self.hectares is not None
        return self.hectares


class ReconciliationFinding(BaseModel):
    """A single reconciliation error or warning and the score it cost."""

    severity: Severity
    code: str  # Machine-readable, e.g. "STATE_MISMATCH"
    field: str
    message: str  # Human-readable, shown to submitters and reviewers
    deduction: int = 0
    details: dict = Field(default_factory=dict)


class VerificationResult(BaseModel):
    """The verdict of cross-source reconciliation."""

    is_valid: bool
    score: int = Field(ge=0, le=100)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    canonical_key: str
    findings: list[ReconciliationFinding] = Field(default_factory=list)

    @property
    def review_notes(self) -> str:
        """Warnings joined the way the registry stores them."""
        return "; ".join(self.warnings)


# ─── Registry Boundary ──────────────────────────────────────────────


class VerificationStatus(str, Enum):
    """Reviewer-controlled lifecycle of a registry record."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RegistrySubmission(BaseModel):
    """What the storage layer persists for a parcel that passed verification."""

    canonical_key: str
    state: str
    district: str
    survey_number: str
    survey_id: str
    village: Optional[str] = None
    taluk: Optional[str] = None
    area_hectares: Optional[float] = None
    geometry: Optional[Geometry] = None
    administrative_data: dict[str, Any] = Field(default_factory=dict)
    survey_data: dict[str, Any] = Field(default_factory=dict)
    verification_score: int
    verification_notes: str = ""
    verification_status: VerificationStatus = VerificationStatus.PENDING


class VerificationReport(BaseModel):
    """The final output of the verification pipeline."""

    canonical_key: str
    is_valid: bool
    result: VerificationResult
    submission: Optional[RegistrySubmission] = None
