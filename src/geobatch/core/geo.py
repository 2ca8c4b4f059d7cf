from __future__ import annotations

from math import atan2, cos, isfinite, nan, radians, sin, sqrt
from typing import Sequence

from geobatch.core.errors import InvalidCoordinateError, LengthMismatchError
from geobatch.domain.models import DistanceResult, GeoPoint

"""
Geospatial helpers.

A tiny geometry layer (range checks and Haversine distances on a spherical Earth) so the
grid, search and processing modules can share one distance kernel without pulling in
heavier GIS dependencies.
"""

EARTH_RADIUS_KM = 6371.0
DISTANCE_DECIMALS = 3


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Return True iff latitude is within [-90, 90] and longitude within [-180, 180].

    NaN fails both comparisons, so it is rejected without a special case.
    """
    return -90 <= lat <= 90 and -180 <= lon <= 180


def require_valid_coordinate(lat: float, lon: float) -> tuple[float, float]:
    """Return the pair unchanged, or raise `InvalidCoordinateError`."""
    if not is_valid_coordinate(lat, lon):
        raise InvalidCoordinateError(f"invalid coordinate lat={lat} lon={lon}")
    return lat, lon


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle distance in kilometers between two lat/lon pairs.

    Non-finite inputs yield NaN, which never satisfies a distance threshold.
    """
    if not (isfinite(lat1) and isfinite(lon1) and isfinite(lat2) and isfinite(lon2)):
        return nan
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dphi = radians(lat2 - lat1)
    dlmb = radians(lon2 - lon1)

    a = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlmb / 2) ** 2
    # Rounding can push `a` a hair outside [0, 1] for near-antipodal pairs.
    a = min(1.0, max(0.0, a))
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    """Unrounded Haversine distance in kilometers between two points."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def batch_distance(origins: Sequence[GeoPoint], targets: Sequence[GeoPoint]) -> list[DistanceResult]:
    """Pairwise distances `origins[i] -> targets[i]`, in input order.

    Raises:
        LengthMismatchError: when the sequences differ in length. Nothing is computed.
    """
    if len(origins) != len(targets):
        raise LengthMismatchError(
            f"batch_distance needs equal lengths, got {len(origins)} origins and {len(targets)} targets"
        )

    results: list[DistanceResult] = []
    for i, (origin, target) in enumerate(zip(origins, targets)):
        d = distance_between(origin, target)
        results.append(
            DistanceResult(
                origin=origin,
                target=target,
                distance_km=round(d, DISTANCE_DECIMALS),
                exact_distance_km=d,
                index=i,
            )
        )
    return results
