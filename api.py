"""
Parcel Verifier — FastAPI Server
=================================

RESTful API for verifying a land parcel from its administrative and survey records.

Endpoints:
    POST /verify                    Verify a pair of JSON documents
    POST /verify/files              Upload the two documents as JSON files
    POST /validate/administrative   Structural check of an administrative record
    POST /validate/survey           Structural check of a survey record
    POST /canonical-key             Compute a parcel's canonical key
    GET  /health                    Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Docs:
    http://localhost:8000/docs             # Swagger UI (auto-generated)
    http://localhost:8000/redoc            # ReDoc (alternative)
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException, UploadFile
from pydantic import BaseModel, Field, ValidationError

from parcel_verifier import __version__
from parcel_verifier.canonical_key import generate_canonical_key
from parcel_verifier.config import config_from_env, with_overrides
from parcel_verifier.exceptions import StructuralError
from parcel_verifier.models import StructuralReport, VerificationReport
from parcel_verifier.pipeline import ParcelVerificationPipeline
from parcel_verifier.structural import (
    validate_administrative_document,
    validate_survey_document,
)

# ─── Load .env if available ──────────────────────────────────────────
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass


MAX_UPLOAD_BYTES = 1_048_576

SAMPLE_ADMINISTRATIVE = {
    "state": "Karnataka",
    "district": "Bangalore Urban",
    "survey_no": "123/4",
    "village": "Yelahanka",
    "area_hectares": 2.0,
}

SAMPLE_SURVEY = {
    "fmb_id": "FMB001",
    "state": "Karnataka",
    "district": "Bangalore Urban",
    "area_hectares": 2.05,
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[77.59, 13.1], [77.59, 13.11], [77.6, 13.11],
                         [77.6, 13.1], [77.59, 13.1]]],
    },
}


# ─── Application Lifespan (build pipeline) ───────────────────────────

_pipeline: ParcelVerificationPipeline | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline from environment settings on startup."""
    global _pipeline  # noqa: PLW0603
    _pipeline = ParcelVerificationPipeline(config_from_env(os.environ))
    yield
    _pipeline = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Parcel Verifier API",
    description=(
        "Cross-source verification of land parcels. Structural validation of the "
        "administrative and survey records, deterministic canonical keys, "
        "polygon checks, and a 0-100 integrity score with itemized findings."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class ConfigOverrides(BaseModel):
    """Per-request changes to the verification settings."""

    area_tolerance_percent: Optional[float] = Field(default=None, ge=0)
    geometry_tolerance_meters: Optional[float] = Field(default=None, ge=0)
    required_fields: Optional[list[str]] = None
    optional_fields: Optional[list[str]] = None


class VerifyRequest(BaseModel):
    """Request body for the /verify endpoint."""

    administrative: Any = Field(
        ...,
        description="The administrative (textual) land record.",
        json_schema_extra={"example": SAMPLE_ADMINISTRATIVE},
    )
    survey: Any = Field(
        ...,
        description="The survey record with a GeoJSON Polygon boundary.",
        json_schema_extra={"example": SAMPLE_SURVEY},
    )
    config: Optional[ConfigOverrides] = None


class CanonicalKeyRequest(BaseModel):
    state: str
    district: str
    survey_number: str
    survey_id: str


class CanonicalKeyResponse(BaseModel):
    canonical_key: str = Field(description="SHA-256 of state|district|survey_number|survey_id")


class VerifyResponse(BaseModel):
    """Structured verification report returned by the API."""

    canonical_key: str
    is_valid: bool
    score: int
    errors: list[str]
    warnings: list[str]
    error_count: int
    warning_count: int
    review_notes: str
    report: VerificationReport

    model_config = {"json_schema_extra": {"example": {
        "canonical_key": "9f2c...",
        "is_valid": False,
        "score": 10,
        "errors": [
            "State mismatch between administrative record ('Karnataka') "
            "and survey record ('Kerala')",
        ],
        "warnings": [],
        "error_count": 1,
        "warning_count": 0,
        "review_notes": "",
        "report": None,
    }}}


class HealthResponse(BaseModel):
    status: str
    version: str
    area_tolerance_percent: float
    geometry_tolerance_meters: float


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> ParcelVerificationPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _build_response(report: VerificationReport) -> VerifyResponse:
    """Flatten the internal report into the API response schema."""
    result = report.result
    return VerifyResponse(
        canonical_key=report.canonical_key,
        is_valid=report.is_valid,
        score=result.score,
        errors=result.errors,
        warnings=result.warnings,
        error_count=len(result.errors),
        warning_count=len(result.warnings),
        review_notes=result.review_notes,
        report=report,
    )


def _structural_http_error(exc: StructuralError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "code": exc.code,
            "document": exc.details["document"],
            "errors": exc.errors,
        },
    )


def _run(
    pipeline: ParcelVerificationPipeline,
    administrative: Any,
    survey: Any,
    overrides: ConfigOverrides | None,
) -> VerificationReport:
    config = pipeline.config
    if overrides is not None:
        try:
            config = with_overrides(config, overrides.model_dump(exclude_none=True))
        except ValidationError as exc:
            raise HTTPException(
                status_code=422, detail=exc.errors(include_context=False)
            ) from exc
    try:
        return pipeline.run(administrative, survey, config)
    except StructuralError as exc:
        raise _structural_http_error(exc) from exc


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/verify",
    summary="Verify a parcel from its two records",
    tags=["Verification"],
    responses={
        422: {"description": "A document failed structural validation"},
        503: {"description": "Pipeline not yet initialised"},
    },
)
def verify_parcel(request: VerifyRequest) -> VerifyResponse:
    """Run structural validation and reconciliation on the two records.

    Returns a structured report with:
    - **is_valid**: `true` if there are no errors and the score is at least 70
    - **score**: 0-100 integrity score
    - **errors** / **warnings**: human-readable findings, in rule order
    - **canonical_key**: SHA-256 fingerprint of the parcel identity
    """
    pipeline = _get_pipeline()
    report = _run(pipeline, request.administrative, request.survey, request.config)
    return _build_response(report)


@app.post(
    "/verify/files",
    summary="Verify a parcel from two uploaded JSON files",
    tags=["Verification"],
    responses={
        413: {"description": "File too large (max 1 MB)"},
        400: {"description": "File is not valid UTF-8 JSON"},
        422: {"description": "A document failed structural validation"},
        503: {"description": "Pipeline not yet initialised"},
    },
)
async def verify_parcel_files(
    administrative_file: UploadFile, survey_file: UploadFile
) -> VerifyResponse:
    """Upload the administrative record and the survey GeoJSON as `.json` files."""
    administrative = await _read_json_upload(administrative_file)
    survey = await _read_json_upload(survey_file)

    pipeline = _get_pipeline()
    report = await asyncio.to_thread(_run, pipeline, administrative, survey, None)
    return _build_response(report)


@app.post(
    "/validate/administrative",
    summary="Structurally validate an administrative record",
    tags=["Validation"],
)
def validate_administrative(document: Any = Body(...)) -> StructuralReport:
    return validate_administrative_document(document)


@app.post(
    "/validate/survey",
    summary="Structurally validate a survey record",
    tags=["Validation"],
)
def validate_survey(document: Any = Body(...)) -> StructuralReport:
    return validate_survey_document(document)


@app.post(
    "/canonical-key",
    summary="Compute a parcel's canonical key",
    tags=["Identity"],
)
def canonical_key(request: CanonicalKeyRequest) -> CanonicalKeyResponse:
    """Fields are hashed exactly as sent: no trimming, no case folding."""
    return CanonicalKeyResponse(
        canonical_key=generate_canonical_key(
            request.state, request.district, request.survey_number, request.survey_id
        )
    )


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and active configuration."""
    pipeline = _get_pipeline()
    return HealthResponse(
        status="healthy",
        version=__version__,
        area_tolerance_percent=pipeline.config.area_tolerance_percent,
        geometry_tolerance_meters=pipeline.config.geometry_tolerance_meters,
    )


async def _read_json_upload(file: UploadFile) -> Any:
    if file.size and file.size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large (max 1 MB)")

    content = await file.read()
    try:
        return json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise HTTPException(
            status_code=400,
            detail=f"{file.filename or 'Upload'} must be UTF-8 encoded JSON",
        )
