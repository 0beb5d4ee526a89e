"""
Structural validators — shape and field checks on raw uploaded documents.

The ingestion layer hands over whatever JSON it was given. These checks run
before reconciliation so a malformed document is rejected with a precise
list of problems instead of a misleading score.

Each validator:
  - Takes the raw document (any JSON-like value)
  - Returns a StructuralReport (never raises, never mutates its input)
  - Is independent of the other validator and of the scorer

``parse_administrative_record`` / ``parse_survey_record`` wrap a validator
and raise StructuralError, which is how a calling workflow short-circuits.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from .exceptions import StructuralError
from .geometry import MIN_RING_COORDINATES
from .models import AdministrativeRecord, StructuralReport, SurveyRecord

logger = logging.getLogger(__name__)

ADMINISTRATIVE_REQUIRED: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("state", ("state",)),
    ("district", ("district",)),
    ("survey_number", ("survey_number", "survey_no")),
)

SURVEY_ID_KEYS: tuple[str, ...] = ("survey_id", "fmb_id")


# ─── Validators ─────────────────────────────────────────────────────


def validate_administrative_document(data: Any) -> StructuralReport:
    """Check an administrative record has its identity fields and a sane area."""
    if not isinstance(data, dict):
        return StructuralReport(
            is_valid=False,
            errors=["Administrative record must be a JSON object"],
        )

    errors: list[str] = []
    for field, keys in ADMINISTRATIVE_REQUIRED:
        if not _is_nonblank_string(_first_present(data, keys)):
            errors.append(f"Missing or invalid required field: {field}")

    errors.extend(_check_area(data))
    return StructuralReport(is_valid=not errors, errors=errors)


def validate_survey_document(data: Any) -> StructuralReport:
    """Check a survey record has an id, a Polygon with a usable outer ring, and a sane area."""
    if not isinstance(data, dict):
        return StructuralReport(
            is_valid=False,
            errors=["Survey record must be a JSON object"],
        )

    errors: list[str] = []
    if not _is_nonblank_string(_first_present(data, SURVEY_ID_KEYS)):
        errors.append("Missing or invalid required field: survey_id")

    errors.extend(_check_geometry(data.get("geometry")))
    errors.extend(_check_area(data))
    return StructuralReport(is_valid=not errors, errors=errors)


# ─── Parsers ────────────────────────────────────────────────────────


def parse_administrative_record(data: Any) -> AdministrativeRecord:
    """Validate and load an administrative record, or raise StructuralError."""
    report = validate_administrative_document(data)
    if not report.is_valid:
        logger.warning("Administrative record rejected: %s", "; ".join(report.errors))
        raise StructuralError("Administrative", report.errors)
    try:
        return AdministrativeRecord.model_validate(data)
    except ValidationError as exc:
        raise StructuralError("Administrative", _pydantic_messages(exc)) from exc


def parse_survey_record(data: Any) -> SurveyRecord:
    """Validate and load a survey record, or raise StructuralError."""
    report = validate_survey_document(data)
    if not report.is_valid:
        logger.warning("Survey record rejected: %s", "; ".join(report.errors))
        raise StructuralError("Survey", report.errors)
    try:
        return SurveyRecord.model_validate(data)
    except ValidationError as exc:
        raise StructuralError("Survey", _pydantic_messages(exc)) from exc


# ─── Internal Helpers ────────────────────────────────────────────────


def _first_present(data: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _is_nonblank_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not an area
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _check_area(data: dict) -> list[str]:
    area = data.get("area_hectares")
    if area is None:
        return []
    if not _is_number(area) or area < 0:
        return ["area_hectares must be a non-negative number"]
    return []


def _check_geometry(geometry: Any) -> list[str]:
    if geometry is None:
        return ["Missing geometry data"]
    if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
        return ["Geometry must be a Polygon"]

    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates:
        return ["Invalid geometry coordinates"]

    ring = coordinates[0]
    if not isinstance(ring, list) or len(ring) < MIN_RING_COORDINATES:
        return [f"Polygon must have at least {MIN_RING_COORDINATES} coordinates"]

    for point in ring:
        if (
            not isinstance(point, (list, tuple))
            or len(point) < 2
            or not all(_is_number(v) for v in point[:2])
        ):
            return ["Polygon coordinates must be [longitude, latitude] number pairs"]

    return []


def _pydantic_messages(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
