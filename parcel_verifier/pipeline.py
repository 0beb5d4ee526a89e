"""
Parcel verification pipeline — orchestrates the full workflow.

Flow:
  ┌────────────────┐     ┌──────────────┐
  │ Administrative │     │    Survey    │   ← Two independent uploads
  │    document    │     │   document   │
  └───────┬────────┘     └──────┬───────┘
          │                     │
  ┌───────▼────────┐     ┌──────▼───────┐
  │  Structural    │     │  Structural  │   ← Fail fast on malformed input
  │  validation    │     │  validation  │
  └───────┬────────┘     └──────┬───────┘
          │                     │
          └──────────┬──────────┘
                     │
             ┌───────▼───────┐
             │  Reconciler   │   ← Canonical key, geometry, score
             └───────┬───────┘
                     │
             ┌───────▼───────┐
             │    Report     │   ← Verdict + registry submission
             └───────────────┘

Design principles:
  - Structural problems raise StructuralError before any scoring happens.
  - Reconciliation always completes and reports every problem in one pass.
  - A registry submission exists only for a result that passed.
  - Nothing here touches storage, the network, or the environment.
"""

from __future__ import annotations

import logging
from typing import Any

from .config import DEFAULT_CONFIG
from .exceptions import RegistrationRejected
from .models import (
    AdministrativeRecord,
    RegistrySubmission,
    SurveyRecord,
    VerificationConfig,
    VerificationReport,
    VerificationResult,
)
from .scoring import reconcile
from .structural import parse_administrative_record, parse_survey_record

logger = logging.getLogger(__name__)


class ParcelVerificationPipeline:
    """Runs structural validation and reconciliation on a pair of documents.

    Usage:
        pipeline = ParcelVerificationPipeline()
        report = pipeline.run(administrative_doc, survey_doc)
        if report.is_valid:
            storage.insert(report.submission)
    """

    def __init__(self, config: VerificationConfig = DEFAULT_CONFIG):
        self.config = config

    def run(
        self,
        administrative_doc: Any,
        survey_doc: Any,
        config: VerificationConfig | None = None,
    ) -> VerificationReport:
        """Verify a document pair.

        Args:
            administrative_doc: Raw administrative record (JSON-like).
            survey_doc: Raw survey record (JSON-like).
            config: Overrides the pipeline's config for this call only.

        Returns:
            VerificationReport with the reconciliation result and, when it
            passed, the record to hand to the registry.

        Raises:
            StructuralError: either document is malformed.
        """
        # ── Step 1: Structural validation (fail fast) ───────────────
        logger.info("Validating administrative record structure...")
        admin = parse_administrative_record(administrative_doc)

        logger.info("Validating survey record structure...")
        survey = parse_survey_record(survey_doc)

        # ── Step 2: Reconcile ───────────────────────────────────────
        active_config = config if config is not None else self.config
        result = reconcile(admin, survey, active_config)

        # ── Step 3: Compile final report ────────────────────────────
        submission = (
            build_registry_submission(admin, survey, result)
            if result.is_valid
            else None
        )
        if submission is None:
            logger.info(
                "Parcel %s did not pass verification (score %d)",
                result.canonical_key[:12], result.score,
            )

        return VerificationReport(
            canonical_key=result.canonical_key,
            is_valid=result.is_valid,
            result=result,
            submission=submission,
        )


# ─── Registry Boundary ───────────────────────────────────────────────


def build_registry_submission(
    admin: AdministrativeRecord,
    survey: SurveyRecord,
    result: VerificationResult,
) -> RegistrySubmission:
    """Shape a passed result into the record the registry stores.

    Raises:
        RegistrationRejected: the result did not pass verification.
    """
    if not result.is_valid:
        raise RegistrationRejected(
            f"Parcel verification failed: {', '.join(result.errors) or 'score too low'}",
            {"score": result.score, "errors": list(result.errors)},
        )

    area = admin.area_hectares if admin.area_hectares else survey.area_hectares

    return RegistrySubmission(
        canonical_key=result.canonical_key,
        state=admin.state,
        district=admin.district,
        survey_number=admin.survey_number,
        survey_id=survey.survey_id,
        village=admin.village,
        taluk=admin.taluk,
        area_hectares=area,
        geometry=survey.geometry,
        administrative_data=admin.raw_document(),
        survey_data=survey.raw_document(),
        verification_score=result.score,
        verification_notes=result.review_notes,
    )
