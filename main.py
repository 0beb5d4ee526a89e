#!/usr/bin/env python3
"""
Parcel Verifier — Entry Point
==============================

Verifies an administrative record against a survey record and prints the report.

Usage:
    python main.py                                 # Bundled sample pair
    python main.py admin.json survey.json          # Your own documents
    PARCEL_AREA_TOLERANCE_PERCENT=3 python main.py # Tighter area tolerance
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

from parcel_verifier.config import config_from_env
from parcel_verifier.exceptions import StructuralError
from parcel_verifier.models import Severity
from parcel_verifier.pipeline import ParcelVerificationPipeline

# ─── Load .env if available (optional dependency) ────────────────────
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass


# ─── Sample Documents — Disagree on Purpose ─────────────────────────

SAMPLE_ADMINISTRATIVE = {
    "state": "Karnataka",
    "district": "Bangalore Urban",
    "survey_no": "12",
    "village": "Yelahanka",
    "taluk": "Bangalore North",
    "owner_name": "R. Lakshmi",
    "area_hectares": 2.0,
    "patta_number": "PT-4471",
}

SAMPLE_SURVEY = {
    "fmb_id": "FMB001",
    "state": "karnataka",
    "district": "Bengaluru Rural",
    "area_hectares": 2.09,
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[77.59, 13.1], [77.59, 13.11], [77.6, 13.11],
                         [77.6, 13.1], [77.59, 13.1]]],
    },
    "surveyor": "Taluk Survey Office",
}


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_findings_group(findings, color: str, label: str) -> None:
    """Print a categorized group of findings (errors or warnings)."""
    if not findings:
        return
    print(f"\n  {color}{_BOLD}{label} ({len(findings)}){_RESET}")
    for f in findings:
        print(f"    {color}[{f.code}]{_RESET} {_DIM}-{f.deduction}{_RESET}")
        print(f"    {f.message}")
        for k, v in f.details.items():
            print(f"      {_DIM}{k}: {v}{_RESET}")
        print()


def _print_submission(submission) -> None:
    print(f"  Registry:    {submission.verification_status.value}")
    print(f"  Survey No.:  {submission.survey_number}  /  {submission.survey_id}")
    if submission.area_hectares is not None:
        print(f"  Area (ha):   {submission.area_hectares}")
    if submission.verification_notes:
        print(f"  Notes:       {submission.verification_notes}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(report) -> int:
    """Pretty-print the verification report with ANSI color codes.

    Returns:
        0 if the parcel passed, 1 if rejected.
    """
    result = report.result
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  PARCEL VERIFICATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Canonical:   {_DIM}{report.canonical_key[:16]}...{_RESET}")
    print(f"  Score:       {_BOLD}{result.score}/100{_RESET}")
    print(f"{'─' * _WIDTH}")

    errors = [f for f in result.findings if f.severity == Severity.ERROR]
    warnings = [f for f in result.findings if f.severity == Severity.WARNING]

    _print_findings_group(errors, _RED, "ERRORS")
    _print_findings_group(warnings, _YELLOW, "WARNINGS")

    if report.submission:
        _print_submission(report.submission)

    print(f"{'=' * _WIDTH}")
    if report.is_valid:
        print(f"  {_GREEN}{_BOLD}PARCEL VERIFIED{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}PARCEL REJECTED  --  {len(errors)} error(s), score {result.score}{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if report.is_valid else 1


def _load_documents(argv: list[str]) -> tuple[object, object]:
    if len(argv) >= 2:
        admin_path, survey_path = Path(argv[0]), Path(argv[1])
        with admin_path.open(encoding="utf-8") as f:
            admin_doc = json.load(f)
        with survey_path.open(encoding="utf-8") as f:
            survey_doc = json.load(f)
        return admin_doc, survey_doc
    return SAMPLE_ADMINISTRATIVE, SAMPLE_SURVEY


# ─── Main ────────────────────────────────────────────────────────────


def main():
    """Run the verification pipeline and print the report."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    print("\n  Starting Parcel Verifier...")
    print("  Reconciling administrative and survey records...\n")

    admin_doc, survey_doc = _load_documents(sys.argv[1:])
    pipeline = ParcelVerificationPipeline(config_from_env(os.environ))

    try:
        report = pipeline.run(admin_doc, survey_doc)
    except StructuralError as exc:
        print(f"  {_RED}{_BOLD}{exc.details['document']} document is malformed:{_RESET}")
        for error in exc.errors:
            print(f"    - {error}")
        print()
        sys.exit(2)

    exit_code = print_report(report)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
