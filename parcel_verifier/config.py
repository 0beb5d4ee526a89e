"""
Verification configuration defaults and environment overrides.

The engine never reads the environment itself. Entry points (api.py, main.py)
load ``.env`` and pass ``os.environ`` to ``config_from_env`` explicitly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping

from pydantic import ValidationError

from .models import VerificationConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = VerificationConfig()

ENV_AREA_TOLERANCE = "PARCEL_AREA_TOLERANCE_PERCENT"
ENV_GEOMETRY_TOLERANCE = "PARCEL_GEOMETRY_TOLERANCE_METERS"


def _env_tolerance(env_name: str, field_name: str, raw: str) -> float | None:
    """Parse one tolerance setting; a bad value is logged and ignored."""
    try:
        value = float(raw)
        if not math.isfinite(value):
            raise ValueError(f"{value} is not finite")
        VerificationConfig(**{field_name: value})
    except (ValueError, ValidationError):
        logger.warning("Ignoring %s=%r — not a non-negative number", env_name, raw)
        return None
    return value


def config_from_env(environ: Mapping[str, str]) -> VerificationConfig:
    """Build a config from environment-style settings, falling back to defaults."""
    overrides: dict[str, float] = {}

    for env_name, field_name in (
        (ENV_AREA_TOLERANCE, "area_tolerance_percent"),
        (ENV_GEOMETRY_TOLERANCE, "geometry_tolerance_meters"),
    ):
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        value = _env_tolerance(env_name, field_name, raw)
        if value is not None:
            overrides[field_name] = value

    if not overrides:
        return DEFAULT_CONFIG
    return VerificationConfig(**overrides)


def with_overrides(
    base: VerificationConfig, overrides: Mapping[str, object] | None
) -> VerificationConfig:
    """Return a new config with the given fields replaced; ``base`` is untouched."""
    if not overrides:
        return base
    return VerificationConfig(**{**base.model_dump(), **overrides})
