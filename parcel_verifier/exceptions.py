"""
Custom exception hierarchy for parcel verification.

Only conditions that must stop a calling workflow are exceptions.
Reconciliation mismatches are accumulated as findings and never raised.
"""

from __future__ import annotations


class ParcelVerificationError(Exception):
    """Base exception for all parcel verification failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class StructuralError(ParcelVerificationError):
    """A document is malformed or lacks a required field."""

    def __init__(self, document: str, errors: list[str]):
        super().__init__(
            "STRUCTURAL_INVALID",
            f"{document} document failed structural validation: {', '.join(errors)}",
            {"document": document, "errors": list(errors)},
        )
        self.errors = list(errors)


class ComputationFailure(ParcelVerificationError):
    """An area could not be derived from the survey geometry."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("AREA_COMPUTATION_FAILED", message, details)


class RegistrationRejected(ParcelVerificationError):
    """A registry submission was requested for a result that did not pass."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("REGISTRATION_REJECTED", message, details)
