"""
geo_fence.py — Spatial containment for alert queries.

Answers "which alerts sit within r km of this point" using the same
Haversine mathematics as the radius utilities.

═══════════════════════════════════════════════════════════════════════════
GEO-FENCE DESIGN
═══════════════════════════════════════════════════════════════════════════

A query defines a circular geo-fence:

    centre:  (lat, lng)    — user location or viewport centre
    radius:  radius_km     — search radius

An alert is inside if:

    haversine(centre, alert_location) ≤ radius_km

Two stages keep this cheap on a large catalog:

    Step 1 — Bounding box pushed into SQL (indexed lat/lng range scan)
    Step 2 — Exact Haversine confirmation on the surviving candidates

The box is a strict superset of the circle, so it never decides
inclusion on its own. It degrades to a latitude band when the circle
crosses the antimeridian or touches a pole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Sequence

from sqlalchemy.sql.elements import ColumnElement

from backend.app.alerts.models import AlertRecord
from backend.app.spatial.radius_utils import (
    Coordinate,
    bounding_box,
    filter_within_radius,
    haversine,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoFence:
    """Circular search area."""
    center: Coordinate
    radius_km: float

    def __post_init__(self) -> None:
        if self.radius_km < 0:
            raise ValueError(f"Radius must be non-negative, got {self.radius_km}")

    def prefilter(self, lat_col: Any, lng_col: Any) -> List[ColumnElement[bool]]:
        """SQL conditions for the bounding box around the circle."""
        bbox = bounding_box(self.center, self.radius_km)
        conditions = [lat_col >= bbox.min_lat, lat_col <= bbox.max_lat]
        if not bbox.spans_all_longitudes:
            conditions += [lng_col >= bbox.min_lon, lng_col <= bbox.max_lon]
        return conditions

    def contains(self, alert: AlertRecord) -> bool:
        return haversine(self.center, alert.coordinate) <= self.radius_km

    def confirm(self, candidates: Sequence[AlertRecord]) -> List[AlertRecord]:
        """Exact Haversine pass over pre-filtered candidates, order preserved."""
        matched = filter_within_radius(
            self.center, candidates, self.radius_km, lambda a: a.coordinate,
        )
        logger.debug(
            "Geo-fence: %d of %d candidates inside %.1f km of (%.4f, %.4f)",
            len(matched), len(candidates), self.radius_km,
            self.center.latitude, self.center.longitude,
        )
        return matched
