"""
Reconciliation scorer — cross-checks an administrative record against a survey record.

Every rule is a pure function that returns a list of ReconciliationFinding
objects (empty = all clear). Each finding carries the score it costs.
``reconcile()`` runs the rules in a fixed order, so the same inputs always
produce the same errors and warnings in the same sequence, then totals the
deductions from a starting score of 100.

Nothing in here raises for a data problem. A failed area derivation comes
back from the geometry module as a value and is recorded as an error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .canonical_key import generate_canonical_key
from .config import DEFAULT_CONFIG
from .geometry import (
    MIN_RING_COORDINATES,
    compute_planar_area,
    is_ring_closed,
    outer_ring,
)
from .models import (
    AdministrativeRecord,
    ReconciliationFinding,
    Severity,
    SurveyRecord,
    VerificationConfig,
    VerificationResult,
    canonical_field_name,
)

logger = logging.getLogger(__name__)


# ─── Constants ───────────────────────────────────────────────────────

STARTING_SCORE = 100
PASSING_SCORE = 70

MISSING_FIELD_DEDUCTION = 20
LOCATION_MISMATCH_DEDUCTION = 30
AREA_MISMATCH_DEDUCTION = 25
AREA_DIFFERENCE_DEDUCTION = 5
AREA_COMPUTATION_DEDUCTION = 15
GEOMETRY_MISSING_DEDUCTION = 30
GEOMETRY_SHAPE_DEDUCTION = 20
PLAUSIBILITY_DEDUCTION = 5

MIN_SURVEY_NUMBER_LENGTH = 3
MAX_PLAUSIBLE_AREA_HA = 1000
MIN_PLAUSIBLE_AREA_HA = 0.001


# ─── Orchestrator ────────────────────────────────────────────────────


def reconcile(
    admin: AdministrativeRecord,
    survey: SurveyRecord,
    config: VerificationConfig = DEFAULT_CONFIG,
) -> VerificationResult:
    """Reconcile the two records into a score, itemized errors and warnings, and a key."""
    canonical_key = generate_canonical_key(
        admin.state, admin.district, admin.survey_number, survey.survey_id
    )

    findings: list[ReconciliationFinding] = []
    findings.extend(check_required_fields(admin, survey, config))
    findings.extend(check_state_match(admin, survey))
    findings.extend(check_district_match(admin, survey))
    findings.extend(check_area_agreement(admin, survey, config))
    findings.extend(check_derived_area(admin, survey, config))
    findings.extend(check_geometry(survey))
    findings.extend(check_plausibility(admin))

    for finding in findings:
        logger.debug(
            "[%s] %s (-%d): %s",
            finding.severity.value, finding.code, finding.deduction, finding.message,
        )

    score = clamp_score(STARTING_SCORE - sum(f.deduction for f in findings))
    errors = [f.message for f in findings if f.severity == Severity.ERROR]
    warnings = [f.message for f in findings if f.severity == Severity.WARNING]
    is_valid = passes_verification(score, errors)

    logger.info(
        "Reconciled parcel %s: score=%d valid=%s (%d error(s), %d warning(s))",
        canonical_key[:12], score, is_valid, len(errors), len(warnings),
    )

    return VerificationResult(
        is_valid=is_valid,
        score=score,
        errors=errors,
        warnings=warnings,
        canonical_key=canonical_key,
        findings=findings,
    )


def clamp_score(score: int) -> int:
    """Clamp a score to the 0-100 range."""
    return max(0, min(STARTING_SCORE, score))


def passes_verification(score: int, errors: list[str]) -> bool:
    """A parcel passes only with no errors and a score of at least 70."""
    return not errors and score >= PASSING_SCORE


# ─── Individual Rules ────────────────────────────────────────────────


def check_required_fields(
    admin: AdministrativeRecord,
    survey: SurveyRecord,
    config: VerificationConfig,
) -> list[ReconciliationFinding]:
    """Every configured required field must be present and non-blank.

    ``survey_id`` (wire name ``fmb_id``) lives on the survey record; every
    other field is looked up on the administrative record, including its
    pass-through data.
    """
    findings: list[ReconciliationFinding] = []

    for field in config.required_fields:
        if canonical_field_name(field) == "survey_id":
            value: Any = survey.survey_id
        else:
            value = admin.field_value(field)

        if _is_blank(value):
            findings.append(
                ReconciliationFinding(
                    severity=Severity.ERROR,
                    code="MISSING_REQUIRED_FIELD",
                    field=field,
                    message=f"Missing required field: {field}",
                    deduction=MISSING_FIELD_DEDUCTION,
                )
            )

    return findings


def check_state_match(
    admin: AdministrativeRecord, survey: SurveyRecord
) -> list[ReconciliationFinding]:
    """State names must agree, ignoring case and repeated whitespace."""
    return _location_mismatch("state", "State", admin.state, survey.state)


def check_district_match(
    admin: AdministrativeRecord, survey: SurveyRecord
) -> list[ReconciliationFinding]:
    """District names must agree, ignoring case and repeated whitespace."""
    return _location_mismatch("district", "District", admin.district, survey.district)


def check_area_agreement(
    admin: AdministrativeRecord,
    survey: SurveyRecord,
    config: VerificationConfig,
) -> list[ReconciliationFinding]:
    """Compare the recorded areas when both records state one.

    The difference is always expressed as a share of the administrative area.
    Beyond the tolerance it is an error; beyond half the tolerance it is a
    warning worth a reviewer's look.
    """
    findings: list[ReconciliationFinding] = []
    admin_area = admin.area_hectares
    survey_area = survey.area_hectares

    if not admin_area or survey_area is None:
        return findings

    percent_diff = area_percent_difference(admin_area, survey_area)
    tolerance = config.area_tolerance_percent
    details = {
        "administrative_area_ha": admin_area,
        "survey_area_ha": survey_area,
        "percent_difference": round(percent_diff, 4),
        "tolerance_percent": tolerance,
    }

    if percent_diff > tolerance:
        findings.append(
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="AREA_MISMATCH",
                field="area_hectares",
                message=(
                    f"Area mismatch: administrative record ({admin_area} ha) vs "
                    f"survey record ({survey_area} ha) - {percent_diff:.2f}% difference"
                ),
                deduction=AREA_MISMATCH_DEDUCTION,
                details=details,
            )
        )
    elif percent_diff > tolerance / 2:
        findings.append(
            ReconciliationFinding(
                severity=Severity.WARNING,
                code="AREA_DIFFERENCE",
                field="area_hectares",
                message=(
                    f"Area difference: {percent_diff:.2f}% "
                    f"(within tolerance but worth reviewing)"
                ),
                deduction=AREA_DIFFERENCE_DEDUCTION,
                details=details,
            )
        )

    return findings


def check_derived_area(
    admin: AdministrativeRecord,
    survey: SurveyRecord,
    config: VerificationConfig,
) -> list[ReconciliationFinding]:
    """Fall back to the polygon's estimated area when the survey states none.

    Only the out-of-tolerance branch applies to an estimated area.
    """
    findings: list[ReconciliationFinding] = []

    if survey.area_hectares is not None or survey.geometry is None:
        return findings

    computation = compute_planar_area(survey.geometry)
    if not computation.ok:
        findings.append(
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="AREA_COMPUTATION_FAILED",
                field="geometry",
                message=f"Failed to calculate area from geometry: {computation.error}",
                deduction=AREA_COMPUTATION_DEDUCTION,
            )
        )
        return findings

    calculated = computation.unwrap()
    admin_area = admin.area_hectares
    if not admin_area:
        return findings

    percent_diff = area_percent_difference(admin_area, calculated)
    if percent_diff > config.area_tolerance_percent:
        findings.append(
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="CALCULATED_AREA_MISMATCH",
                field="area_hectares",
                message=(
                    f"Calculated area mismatch: administrative record ({admin_area} ha) "
                    f"vs calculated ({calculated:.4f} ha) - {percent_diff:.2f}% difference"
                ),
                deduction=AREA_MISMATCH_DEDUCTION,
                details={
                    "administrative_area_ha": admin_area,
                    "calculated_area_ha": calculated,
                    "percent_difference": round(percent_diff, 4),
                },
            )
        )

    return findings


def check_geometry(survey: SurveyRecord) -> list[ReconciliationFinding]:
    """The survey must carry a closed Polygon with at least four coordinates."""
    geometry = survey.geometry

    if geometry is None:
        return [
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="GEOMETRY_MISSING",
                field="geometry",
                message="Missing geometry data in survey record",
                deduction=GEOMETRY_MISSING_DEDUCTION,
            )
        ]

    if geometry.type != "Polygon":
        return [
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="GEOMETRY_NOT_POLYGON",
                field="geometry",
                message="Geometry must be a Polygon",
                deduction=GEOMETRY_MISSING_DEDUCTION,
                details={"geometry_type": geometry.type},
            )
        ]

    ring = outer_ring(geometry)
    if len(ring) < MIN_RING_COORDINATES:
        return [
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="POLYGON_TOO_FEW_COORDINATES",
                field="geometry",
                message=f"Polygon must have at least {MIN_RING_COORDINATES} coordinates",
                deduction=GEOMETRY_SHAPE_DEDUCTION,
                details={"coordinate_count": len(ring)},
            )
        ]

    # Exact comparison: a ring that is almost closed is still open
    if not is_ring_closed(ring):
        return [
            ReconciliationFinding(
                severity=Severity.ERROR,
                code="POLYGON_NOT_CLOSED",
                field="geometry",
                message=(
                    "Polygon must be closed "
                    "(first and last coordinates must be the same)"
                ),
                deduction=GEOMETRY_SHAPE_DEDUCTION,
                details={"first": ring[0], "last": ring[-1]},
            )
        ]

    return []


def check_plausibility(admin: AdministrativeRecord) -> list[ReconciliationFinding]:
    """Flag values that are legal but unusual enough to deserve a second look."""
    findings: list[ReconciliationFinding] = []

    if admin.survey_number and len(admin.survey_number) < MIN_SURVEY_NUMBER_LENGTH:
        findings.append(
            ReconciliationFinding(
                severity=Severity.WARNING,
                code="SURVEY_NUMBER_SHORT",
                field="survey_number",
                message="Survey number seems unusually short",
                deduction=PLAUSIBILITY_DEDUCTION,
                details={"survey_number": admin.survey_number},
            )
        )

    area = admin.area_hectares
    if area is not None and area > MAX_PLAUSIBLE_AREA_HA:
        findings.append(
            ReconciliationFinding(
                severity=Severity.WARNING,
                code="AREA_UNUSUALLY_LARGE",
                field="area_hectares",
                message=f"Parcel area is unusually large (>{MAX_PLAUSIBLE_AREA_HA} hectares)",
                deduction=PLAUSIBILITY_DEDUCTION,
                details={"area_hectares": area},
            )
        )

    if area is not None and area < MIN_PLAUSIBLE_AREA_HA:
        findings.append(
            ReconciliationFinding(
                severity=Severity.WARNING,
                code="AREA_UNUSUALLY_SMALL",
                field="area_hectares",
                message=f"Parcel area is unusually small (<{MIN_PLAUSIBLE_AREA_HA} hectares)",
                deduction=PLAUSIBILITY_DEDUCTION,
                details={"area_hectares": area},
            )
        )

    return findings


# ─── Helpers ─────────────────────────────────────────────────────────


def area_percent_difference(admin_area: float, other_area: float) -> float:
    """Absolute difference as a percentage of the administrative area."""
    return abs(admin_area - other_area) / admin_area * 100


def normalize_text(text: str) -> str:
    """Lowercase and collapse runs of whitespace, for name comparison."""
    return " ".join(text.lower().split())


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _location_mismatch(
    field: str, label: str, admin_value: Optional[str], survey_value: Optional[str]
) -> list[ReconciliationFinding]:
    if _is_blank(admin_value) or _is_blank(survey_value):
        return []
    assert admin_value is not None and survey_value is not None

    if normalize_text(admin_value) == normalize_text(survey_value):
        return []

    return [
        ReconciliationFinding(
            severity=Severity.ERROR,
            code=f"{field.upper()}_MISMATCH",
            field=field,
            message=(
                f"{label} mismatch between administrative record ('{admin_value}') "
                f"and survey record ('{survey_value}')"
            ),
            deduction=LOCATION_MISMATCH_DEDUCTION,
            details={"administrative": admin_value, "survey": survey_value},
        )
    ]
