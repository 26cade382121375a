"""
radius_utils.py — Great-circle distance and radius containment.

Provides:
    - Haversine distance calculation between two (lat, lon) points
    - Point-in-radius check (boundary inclusive)
    - Bounding-box computation used as a cheap SQL pre-filter
    - Order-preserving batch containment filter

All distances are in **kilometers**. Coordinates are in **decimal degrees**.

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where:
    φ  = latitude in radians
    λ  = longitude in radians
    R  = 6 371 km (Earth approximated as a perfect sphere)
    c  = angular distance in radians

The sphere radius is fixed at exactly 6 371 km so that a search radius r
corresponds to an angular radius of r / 6371 radians, the same convention
as document-store ``$centerSphere`` queries that existing clients rely on.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, TypeVar


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM: float = 6_371.0

# Slack added to bounding boxes so float error never rejects a boundary point
_BBOX_SLACK_DEG: float = 1e-9

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        """Latitude in radians."""
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        """Longitude in radians."""
        return math.radians(self.longitude)


@dataclass(frozen=True)
class BoundingBox:
    """
    Rectangle in degrees that fully contains a search circle.

    ``spans_all_longitudes`` is set when the circle crosses the
    antimeridian or covers a pole; callers must then skip the longitude
    bounds and rely on latitude only.
    """
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float
    spans_all_longitudes: bool = False

    def contains(self, lat: float, lon: float) -> bool:
        if not (self.min_lat <= lat <= self.max_lat):
            return False
        if self.spans_all_longitudes:
            return True
        return self.min_lon <= lon <= self.max_lon


# ---------------------------------------------------------------------------
# Haversine implementation
# ---------------------------------------------------------------------------

def haversine(point1: Coordinate, point2: Coordinate) -> float:
    """
    Compute the great-circle distance between two points using the
    Haversine formula.

    The result is not rounded: containment decisions compare it directly
    against the radius.

    Examples
    --------
    >>> round(haversine(Coordinate(28.6139, 77.2090), Coordinate(28.70, 77.10)), 1)
    14.3

    >>> haversine(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )
    a = min(1.0, max(0.0, a))

    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))

    return EARTH_RADIUS_KM * c


def km_to_radians(radius_km: float) -> float:
    """Angular radius of a linear distance on the 6 371 km sphere."""
    return radius_km / EARTH_RADIUS_KM


# ---------------------------------------------------------------------------
# Bounding-box pre-filter (fast rejection before Haversine)
# ---------------------------------------------------------------------------

def bounding_box(center: Coordinate, radius_km: float) -> BoundingBox:
    """
    Compute a lat/lon bounding box that fully contains the circle defined
    by (center, radius_km).

    The box is only ever used to reject candidates; anything inside it is
    still confirmed with :func:`haversine`.
    """
    angular = km_to_radians(radius_km)
    delta_lat = math.degrees(angular) + _BBOX_SLACK_DEG

    min_lat = center.latitude - delta_lat
    max_lat = center.latitude + delta_lat

    # Circle reaches a pole: every longitude is a candidate
    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(
            max(min_lat, -90.0), min(max_lat, 90.0), -180.0, 180.0,
            spans_all_longitudes=True,
        )

    # Longitude delta widens toward the poles
    lat_rad = math.radians(center.latitude)
    ratio = math.sin(angular) / math.cos(lat_rad)
    if ratio >= 1.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0, spans_all_longitudes=True)
    delta_lon = math.degrees(math.asin(ratio)) + _BBOX_SLACK_DEG

    min_lon = center.longitude - delta_lon
    max_lon = center.longitude + delta_lon

    # Crosses the antimeridian
    if min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0, spans_all_longitudes=True)

    return BoundingBox(min_lat, max_lat, min_lon, max_lon)


# ---------------------------------------------------------------------------
# Radius containment
# ---------------------------------------------------------------------------

def is_inside_radius(
    center: Coordinate,
    point: Coordinate,
    radius_km: float,
) -> tuple[bool, float]:
    """
    Check whether ``point`` lies within ``radius_km`` of ``center``.

    The boundary is inclusive: a point at exactly ``radius_km`` is inside.

    Returns
    -------
    (inside, distance_km) : tuple[bool, float]

    Examples
    --------
    >>> delhi = Coordinate(28.6139, 77.2090)
    >>> is_inside_radius(delhi, Coordinate(28.70, 77.10), 50.0)[0]
    True
    >>> is_inside_radius(delhi, Coordinate(28.70, 77.10), 10.0)[0]
    False
    """
    if radius_km < 0:
        raise ValueError(f"Radius must be non-negative, got {radius_km}")

    dist = haversine(center, point)
    return (dist <= radius_km, dist)


def filter_within_radius(
    center: Coordinate,
    items: Iterable[T],
    radius_km: float,
    locate: Callable[[T], Coordinate],
) -> List[T]:
    """
    Keep the items whose location lies within ``radius_km`` of ``center``.

    Input order is preserved so that an already-sorted candidate list
    stays sorted.
    """
    bbox = bounding_box(center, radius_km)
    matched: List[T] = []

    for item in items:
        point = locate(item)
        if not bbox.contains(point.latitude, point.longitude):
            continue
        if haversine(center, point) <= radius_km:
            matched.append(item)

    return matched
