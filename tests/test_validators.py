"""
Tests for the leaf components: canonical key, structural validators, geometry.

Pure functions only — no network, no files, no flakiness.

Run: pytest tests/ -v
"""

from __future__ import annotations

import copy
import hashlib
import logging
import math
from typing import Any

import pytest
from pydantic import ValidationError

from parcel_verifier.canonical_key import generate_canonical_key
from parcel_verifier.config import (
    DEFAULT_CONFIG,
    config_from_env,
    with_overrides,
)
from parcel_verifier.exceptions import ComputationFailure, StructuralError
from parcel_verifier.geometry import (
    EARTH_RADIUS_M,
    compute_planar_area,
    great_circle_distance_meters,
    is_ring_closed,
)
from parcel_verifier.models import (
    AdministrativeRecord,
    Geometry,
    SurveyRecord,
    VerificationConfig,
)
from parcel_verifier.structural import (
    parse_administrative_record,
    parse_survey_record,
    validate_administrative_document,
    validate_survey_document,
)


# ─── Test Data ───────────────────────────────────────────────────────

UNIT_SQUARE = [[0, 0], [0, 1], [1, 1], [1, 0], [0, 0]]


def _admin_doc(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "state": "Karnataka",
        "district": "Bangalore Urban",
        "survey_no": "123/4",
        "village": "Yelahanka",
        "area_hectares": 2.0,
    }
    doc.update(overrides)
    return doc


def _survey_doc(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "fmb_id": "FMB001",
        "geometry": {"type": "Polygon", "coordinates": [UNIT_SQUARE]},
        "area_hectares": 2.05,
    }
    doc.update(overrides)
    return doc


# ═══════════════════════════════════════════════════════════════════════
# CANONICAL KEY
# ═══════════════════════════════════════════════════════════════════════


class TestCanonicalKey:
    def test_matches_sha256_of_pipe_joined_fields(self):
        expected = hashlib.sha256(
            "Karnataka|Bangalore Urban|123/4|FMB001".encode("utf-8")
        ).hexdigest()
        assert generate_canonical_key("Karnataka", "Bangalore Urban", "123/4", "FMB001") == expected

    def test_is_64_lowercase_hex(self):
        key = generate_canonical_key("Karnataka", "Bangalore Urban", "123/4", "FMB001")
        assert len(key) == 64
        assert key == key.lower()
        int(key, 16)

    def test_deterministic(self):
        args = ("Karnataka", "Bangalore Urban", "123/4", "FMB001")
        assert generate_canonical_key(*args) == generate_canonical_key(*args)

    @pytest.mark.parametrize("index", [0, 1, 2, 3])
    def test_any_changed_field_changes_key(self, index: int):
        base = ["Karnataka", "Bangalore Urban", "123/4", "FMB001"]
        changed = list(base)
        changed[index] = changed[index] + "X"
        assert generate_canonical_key(*base) != generate_canonical_key(*changed)

    def test_case_is_not_normalized(self):
        assert generate_canonical_key("Karnataka", "B", "1", "F") != generate_canonical_key(
            "karnataka", "B", "1", "F"
        )

    def test_whitespace_is_not_trimmed(self):
        assert generate_canonical_key("Karnataka ", "B", "1", "F") != generate_canonical_key(
            "Karnataka", "B", "1", "F"
        )

    def test_unicode_fields_hash_as_utf8(self):
        expected = hashlib.sha256("ಕರ್ನಾಟಕ|ಬೆಂಗಳೂರು|12|F1".encode("utf-8")).hexdigest()
        assert generate_canonical_key("ಕರ್ನಾಟಕ", "ಬೆಂಗಳೂರು", "12", "F1") == expected

    def test_separator_in_field_collides_and_is_logged(self, caplog):
        """Known limitation: '|' inside a field is not escaped."""
        with caplog.at_level(logging.WARNING, logger="parcel_verifier.canonical_key"):
            a = generate_canonical_key("A|B", "C", "D", "E")
        b = generate_canonical_key("A", "B|C", "D", "E")
        assert a == b
        assert "may collide" in caplog.text


# ═══════════════════════════════════════════════════════════════════════
# ADMINISTRATIVE STRUCTURAL VALIDATOR
# ═══════════════════════════════════════════════════════════════════════


class TestAdministrativeValidator:
    def test_valid_document_passes(self):
        report = validate_administrative_document(_admin_doc())
        assert report.is_valid is True
        assert report.errors == []

    def test_survey_number_key_accepted(self):
        doc = _admin_doc()
        doc["survey_number"] = doc.pop("survey_no")
        assert validate_administrative_document(doc).is_valid

    @pytest.mark.parametrize("value", [None, "not json", ["state"], 42])
    def test_non_object_rejected(self, value: Any):
        report = validate_administrative_document(value)
        assert report.is_valid is False
        assert report.errors == ["Administrative record must be a JSON object"]

    def test_missing_required_fields_listed_in_order(self):
        report = validate_administrative_document({})
        assert report.errors == [
            "Missing or invalid required field: state",
            "Missing or invalid required field: district",
            "Missing or invalid required field: survey_number",
        ]

    def test_blank_after_trim_is_invalid(self):
        report = validate_administrative_document(_admin_doc(district="   "))
        assert report.errors == ["Missing or invalid required field: district"]

    def test_non_string_field_is_invalid(self):
        report = validate_administrative_document(_admin_doc(state=29))
        assert report.errors == ["Missing or invalid required field: state"]

    def test_negative_area_rejected(self):
        report = validate_administrative_document(_admin_doc(area_hectares=-1))
        assert report.errors == ["area_hectares must be a non-negative number"]

    @pytest.mark.parametrize("area", ["2.0", True, float("nan")])
    def test_non_numeric_area_rejected(self, area: Any):
        report = validate_administrative_document(_admin_doc(area_hectares=area))
        assert report.is_valid is False

    def test_zero_area_accepted(self):
        assert validate_administrative_document(_admin_doc(area_hectares=0)).is_valid

    def test_absent_area_accepted(self):
        doc = _admin_doc()
        del doc["area_hectares"]
        assert validate_administrative_document(doc).is_valid

    def test_input_not_mutated(self):
        doc = _admin_doc(mutation_number="M-77")
        snapshot = copy.deepcopy(doc)
        validate_administrative_document(doc)
        parse_administrative_record(doc)
        assert doc == snapshot


# ═══════════════════════════════════════════════════════════════════════
# SURVEY STRUCTURAL VALIDATOR
# ═══════════════════════════════════════════════════════════════════════


class TestSurveyValidator:
    def test_valid_document_passes(self):
        report = validate_survey_document(_survey_doc())
        assert report.is_valid is True

    def test_survey_id_key_accepted(self):
        doc = _survey_doc()
        doc["survey_id"] = doc.pop("fmb_id")
        assert validate_survey_document(doc).is_valid

    def test_non_object_rejected(self):
        report = validate_survey_document("FMB001")
        assert report.errors == ["Survey record must be a JSON object"]

    def test_missing_survey_id(self):
        report = validate_survey_document(_survey_doc(fmb_id=" "))
        assert report.errors == ["Missing or invalid required field: survey_id"]

    def test_missing_geometry(self):
        doc = _survey_doc()
        del doc["geometry"]
        assert validate_survey_document(doc).errors == ["Missing geometry data"]

    def test_non_polygon_geometry(self):
        report = validate_survey_document(
            _survey_doc(geometry={"type": "Point", "coordinates": [77.5, 13.0]})
        )
        assert report.errors == ["Geometry must be a Polygon"]

    def test_invalid_coordinates(self):
        report = validate_survey_document(
            _survey_doc(geometry={"type": "Polygon", "coordinates": "0,0 1,1"})
        )
        assert report.errors == ["Invalid geometry coordinates"]

    def test_too_few_coordinates(self):
        report = validate_survey_document(
            _survey_doc(geometry={"type": "Polygon", "coordinates": [[[0, 0], [0, 1], [0, 0]]]})
        )
        assert report.errors == ["Polygon must have at least 4 coordinates"]

    def test_non_numeric_pairs(self):
        ring = [[0, 0], [0, "1"], [1, 1], [0, 0]]
        report = validate_survey_document(
            _survey_doc(geometry={"type": "Polygon", "coordinates": [ring]})
        )
        assert report.errors == [
            "Polygon coordinates must be [longitude, latitude] number pairs"
        ]

    def test_open_ring_is_structurally_fine(self):
        """Closure is a reconciliation concern, not a structural one."""
        ring = UNIT_SQUARE[:-1]
        report = validate_survey_document(
            _survey_doc(geometry={"type": "Polygon", "coordinates": [ring]})
        )
        assert report.is_valid

    def test_errors_accumulate(self):
        report = validate_survey_document({"area_hectares": -3})
        assert report.errors == [
            "Missing or invalid required field: survey_id",
            "Missing geometry data",
            "area_hectares must be a non-negative number",
        ]


# ═══════════════════════════════════════════════════════════════════════
# PARSERS & MODELS
# ═══════════════════════════════════════════════════════════════════════


class TestParsers:
    def test_parse_administrative_record(self):
        record = parse_administrative_record(_admin_doc(patta_number="PT-1"))
        assert isinstance(record, AdministrativeRecord)
        assert record.survey_number == "123/4"
        assert record.patta_number == "PT-1"

    def test_parse_raises_structural_error(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_administrative_record({"state": "Karnataka"})
        exc = exc_info.value
        assert exc.code == "STRUCTURAL_INVALID"
        assert exc.details["document"] == "Administrative"
        assert "Missing or invalid required field: district" in exc.errors

    def test_mistyped_optional_field_raises_structural_error(self):
        with pytest.raises(StructuralError):
            parse_administrative_record(_admin_doc(village=123))

    def test_parse_survey_record(self):
        record = parse_survey_record(_survey_doc(state="Karnataka"))
        assert isinstance(record, SurveyRecord)
        assert record.survey_id == "FMB001"
        assert record.geometry is not None
        assert record.geometry.type == "Polygon"
        assert record.state == "Karnataka"

    def test_parse_survey_raises_structural_error(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_survey_record(_survey_doc(geometry=None))
        assert exc_info.value.details["document"] == "Survey"


class TestPassThrough:
    def test_unknown_keys_preserved_in_extra(self):
        record = AdministrativeRecord.model_validate(
            _admin_doc(mutation_number="M-77", remarks={"note": "inherited"})
        )
        assert record.extra == {"mutation_number": "M-77", "remarks": {"note": "inherited"}}

    def test_to_document_restores_unknown_keys(self):
        record = SurveyRecord.model_validate(_survey_doc(surveyor="Taluk Office"))
        doc = record.to_document()
        assert doc["surveyor"] == "Taluk Office"
        assert doc["survey_id"] == "FMB001"
        assert "extra" not in doc

    def test_field_value_reads_extra(self):
        record = AdministrativeRecord.model_validate(_admin_doc(mutation_number="M-77"))
        assert record.field_value("mutation_number") == "M-77"
        assert record.field_value("state") == "Karnataka"
        assert record.field_value("nonexistent") is None

    def test_field_value_resolves_wire_names(self):
        record = AdministrativeRecord.model_validate(_admin_doc())
        assert record.field_value("survey_no") == "123/4"

    @pytest.mark.parametrize("upstream_extra", [5, "surveyor note", {"k": 1}, [1, 2], None])
    def test_literal_extra_key_is_ordinary_pass_through(self, upstream_extra: Any):
        doc = _survey_doc(extra=upstream_extra)
        assert validate_survey_document(doc).is_valid
        record = parse_survey_record(doc)
        assert record.extra == {"extra": upstream_extra}
        assert record.to_document()["extra"] == upstream_extra

    def test_literal_extra_key_round_trips(self):
        doc = _admin_doc(extra={"k": 1}, mutation_number="M-77")
        record = parse_administrative_record(doc)
        restored = record.to_document()
        assert restored["extra"] == {"k": 1}
        assert restored["mutation_number"] == "M-77"
        assert "k" not in restored
        assert record.raw_document() == doc

    def test_raw_document_keeps_wire_names(self):
        record = parse_survey_record(_survey_doc(surveyor="Taluk Office"))
        raw = record.raw_document()
        assert raw["fmb_id"] == "FMB001"
        assert "survey_id" not in raw
        raw["surveyor"] = "changed"
        assert record.raw_document()["surveyor"] == "Taluk Office"

    def test_pass_through_is_copied_from_input(self):
        doc = _admin_doc(remarks={"note": "inherited"})
        record = parse_administrative_record(doc)
        doc["remarks"]["note"] = "edited upstream"
        assert record.extra["remarks"] == {"note": "inherited"}


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════


class TestConfig:
    def test_defaults(self):
        assert DEFAULT_CONFIG.area_tolerance_percent == 5
        assert DEFAULT_CONFIG.geometry_tolerance_meters == 10
        assert DEFAULT_CONFIG.required_fields == (
            "state", "district", "survey_number", "survey_id",
        )
        assert DEFAULT_CONFIG.optional_fields == (
            "village", "taluk", "area_hectares", "owner_name",
        )

    def test_default_config_is_frozen(self):
        with pytest.raises(ValidationError):
            DEFAULT_CONFIG.area_tolerance_percent = 50  # type: ignore[misc]

    def test_with_overrides_leaves_base_untouched(self):
        tightened = with_overrides(DEFAULT_CONFIG, {"area_tolerance_percent": 2})
        assert tightened.area_tolerance_percent == 2
        assert DEFAULT_CONFIG.area_tolerance_percent == 5

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValidationError):
            VerificationConfig(area_tolerance_percent=-1)

    def test_config_from_empty_env_is_default(self):
        assert config_from_env({}) is DEFAULT_CONFIG

    def test_config_from_env_reads_tolerances(self):
        config = config_from_env({
            "PARCEL_AREA_TOLERANCE_PERCENT": "3.5",
            "PARCEL_GEOMETRY_TOLERANCE_METERS": "25",
        })
        assert config.area_tolerance_percent == 3.5
        assert config.geometry_tolerance_meters == 25

    def test_config_from_env_ignores_garbage(self):
        config = config_from_env({"PARCEL_AREA_TOLERANCE_PERCENT": "five"})
        assert config.area_tolerance_percent == 5

    @pytest.mark.parametrize("raw", ["-1", "nan", "inf"])
    def test_config_from_env_ignores_out_of_range(self, raw: str, caplog):
        with caplog.at_level(logging.WARNING, logger="parcel_verifier.config"):
            config = config_from_env({
                "PARCEL_AREA_TOLERANCE_PERCENT": raw,
                "PARCEL_GEOMETRY_TOLERANCE_METERS": "25",
            })
        assert config.area_tolerance_percent == 5
        assert config.geometry_tolerance_meters == 25
        assert "PARCEL_AREA_TOLERANCE_PERCENT" in caplog.text


# ═══════════════════════════════════════════════════════════════════════
# GEOMETRY
# ═══════════════════════════════════════════════════════════════════════


class TestPlanarArea:
    def test_unit_square(self):
        result = compute_planar_area(Geometry(type="Polygon", coordinates=[UNIT_SQUARE]))
        assert result.ok
        assert result.hectares == 0.00005

    def test_orientation_does_not_matter(self):
        clockwise = Geometry(type="Polygon", coordinates=[list(reversed(UNIT_SQUARE))])
        assert compute_planar_area(clockwise).hectares == 0.00005

    def test_inner_rings_ignored(self):
        hole = [[0.25, 0.25], [0.25, 0.75], [0.75, 0.75], [0.75, 0.25], [0.25, 0.25]]
        result = compute_planar_area(Geometry(type="Polygon", coordinates=[UNIT_SQUARE, hole]))
        assert result.hectares == 0.00005

    def test_scales_with_area(self):
        square = [[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]
        result = compute_planar_area(Geometry(type="Polygon", coordinates=[square]))
        assert result.hectares == pytest.approx(0.005)

    def test_non_polygon_fails_as_value(self):
        result = compute_planar_area(Geometry(type="Point", coordinates=[77.5, 13.0]))
        assert result.ok is False
        assert result.hectares is None
        assert "Polygon" in (result.error or "")

    def test_missing_geometry_fails_as_value(self):
        assert compute_planar_area(None).ok is False

    def test_unwrap_raises_computation_failure(self):
        result = compute_planar_area(Geometry(type="LineString", coordinates=[[0, 0], [1, 1]]))
        with pytest.raises(ComputationFailure) as exc_info:
            result.unwrap()
        assert exc_info.value.code == "AREA_COMPUTATION_FAILED"

    def test_unwrap_returns_area(self):
        result = compute_planar_area(Geometry(type="Polygon", coordinates=[UNIT_SQUARE]))
        assert result.unwrap() == 0.00005


class TestRingClosure:
    def test_closed_ring(self):
        assert is_ring_closed(UNIT_SQUARE) is True

    def test_open_ring(self):
        assert is_ring_closed(UNIT_SQUARE[:-1]) is False

    def test_no_epsilon_tolerance(self):
        ring = UNIT_SQUARE[:-1] + [[0, 1e-12]]
        assert is_ring_closed(ring) is False

    def test_empty_ring(self):
        assert is_ring_closed([]) is False


class TestGreatCircleDistance:
    def test_same_point_is_zero(self):
        assert great_circle_distance_meters(13.0, 77.5, 13.0, 77.5) == 0

    def test_one_degree_of_latitude(self):
        expected = EARTH_RADIUS_M * math.pi / 180
        assert great_circle_distance_meters(0, 0, 1, 0) == pytest.approx(expected, rel=1e-9)

    def test_symmetric(self):
        d1 = great_circle_distance_meters(12.97, 77.59, 13.08, 80.27)
        d2 = great_circle_distance_meters(13.08, 80.27, 12.97, 77.59)
        assert d1 == pytest.approx(d2)

    def test_bangalore_to_chennai(self):
        d = great_circle_distance_meters(12.9716, 77.5946, 13.0827, 80.2707)
        assert 285_000 < d < 295_000
