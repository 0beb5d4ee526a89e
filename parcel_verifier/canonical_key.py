"""
Canonical parcel key — the identity fingerprint shared with stored registry rows.

Format: sha256("state|district|survey_number|survey_id"), lowercase hex.
Inputs are hashed exactly as given: no trimming, no case folding, no escaping.
Keys already persisted elsewhere were built this way, so the bytes must match.
"""

from __future__ import annotations

import hashlib
import logging

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"


def generate_canonical_key(
    state: str, district: str, survey_number: str, survey_id: str
) -> str:
    """Return the 64-character SHA-256 fingerprint of the four identity fields."""
    parts = (state, district, survey_number, survey_id)
    if any(KEY_SEPARATOR in part for part in parts):
        logger.warning(
            "Canonical key input contains '%s'; distinct parcels may collide: %r",
            KEY_SEPARATOR,
            parts,
        )
    key_string = KEY_SEPARATOR.join(parts)
    return hashlib.sha256(key_string.encode("utf-8")).hexdigest()
