"""
Polygon checks, planar area estimate, and great-circle distance.

The area here is a rough planar figure over degree coordinates:
shoelace area of the outer ring, halved, divided by 10,000. It is good
enough to spot a survey sheet that disagrees wildly with the land record,
and nothing more. Do not treat it as survey-grade.
"""

from __future__ import annotations

import math
from typing import Any

from .exceptions import ComputationFailure
from .models import AreaComputation, Geometry

EARTH_RADIUS_M = 6_371_000.0
DEGREE_AREA_DIVISOR = 10_000
MIN_RING_COORDINATES = 4


def outer_ring(geometry: Geometry) -> list:
    """Return the outer ring of a Polygon, or [] if it has none."""
    coordinates = geometry.coordinates
    if not isinstance(coordinates, list) or not coordinates:
        return []
    ring = coordinates[0]
    return ring if isinstance(ring, list) else []


def is_ring_closed(ring: list[Any]) -> bool:
    """A ring is closed iff its first and last coordinate pairs are exactly equal."""
    if not ring:
        return False
    first, last = ring[0], ring[-1]
    try:
        return first[0] == last[0] and first[1] == last[1]
    except (TypeError, IndexError, KeyError):
        return False


def compute_planar_area(geometry: Geometry | None) -> AreaComputation:
    """Estimate a parcel's area in hectares from its outer ring.

    Inner rings (holes) are ignored. Returns a failed ``AreaComputation``
    instead of raising when the geometry is not a readable Polygon.
    """
    try:
        return AreaComputation(hectares=_shoelace_hectares(geometry))
    except ComputationFailure as exc:
        return AreaComputation(error=str(exc))


def _shoelace_hectares(geometry: Geometry | None) -> float:
    if geometry is None:
        raise ComputationFailure("No geometry to compute an area from")
    if geometry.type != "Polygon":
        raise ComputationFailure(
            f"Only Polygon geometries are supported (got {geometry.type})",
            {"geometry_type": geometry.type},
        )

    ring = outer_ring(geometry)
    area = 0.0
    try:
        for (x1, y1, *_), (x2, y2, *_) in zip(ring, ring[1:]):
            area += x1 * y2 - x2 * y1
    except (TypeError, ValueError) as exc:
        raise ComputationFailure(f"Unreadable polygon coordinates: {exc}") from exc

    shoelace_area = abs(area) / 2
    # Fixed heuristic scale shared with stored estimates: unit square -> 0.00005 ha
    return shoelace_area / 2 / DEGREE_AREA_DIVISOR


def great_circle_distance_meters(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """Haversine distance between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c
