"""
query.py — Read-side query planning for alerts.

Turns loosely-typed request parameters into an ``AlertFilter`` plus sort
and page window, then runs it against the store.

═══════════════════════════════════════════════════════════════════════════
PARAMETER HANDLING
═══════════════════════════════════════════════════════════════════════════

    Parameter   Default        Malformed value
    ─────────   ───────        ──────────────────────────────────────────
    limit       20             non-numeric / ≤ 0 → 20, > 100 → 100
    page        1              non-numeric / ≤ 0 → 1
    radius      50 km          non-numeric / negative → 50
    status      "active"       unknown label → ValidationError
    type        —              unknown label → ValidationError
    severity    —              unknown label → ValidationError
    lat / lng   —              non-numeric or out of range → ValidationError
    sort        -createdAt     unknown field → ValidationError

Numeric paging parameters are coerced; filters are rejected.

═══════════════════════════════════════════════════════════════════════════
"ACTIVE" SEMANTICS
═══════════════════════════════════════════════════════════════════════════

``status=active`` (the default) does NOT compare the stored status label.
It is replaced by the validity-window test at the current instant.
Any other status value is a plain label equality. ``status=all`` or an
empty value applies no status filter at all.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from backend.app.alerts.geo_fence import GeoFence
from backend.app.alerts.models import AlertRecord, AlertSeverity, AlertStatus, AlertType
from backend.app.alerts.store import DEFAULT_SORT, AlertFilter, AlertStore
from backend.app.core.config import settings
from backend.app.core.errors import ValidationError
from backend.app.spatial.radius_utils import Coordinate

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

STATUS_ANY = "all"
NEAR_LOCATION_SORT = "-severity,-createdAt"


# ═══════════════════════════════════════════════════════════════════════════
# Coercion helpers
# ═══════════════════════════════════════════════════════════════════════════

def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def coerce_limit(value: Any) -> int:
    number = _to_float(value)
    if number is None or int(number) < 1:
        return settings.DEFAULT_PAGE_SIZE
    return min(int(number), settings.MAX_PAGE_SIZE)


def coerce_page(value: Any) -> int:
    number = _to_float(value)
    if number is None or int(number) < 1:
        return 1
    return int(number)


def coerce_radius(value: Any) -> float:
    number = _to_float(value)
    if number is None or number < 0:
        return settings.DEFAULT_RADIUS_KM
    return number


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> Optional[E]:
    """Enum member for ``value``; ``None`` when the parameter is absent."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ValidationError(
            f"Invalid {field} '{value}'. Must be one of: {allowed}",
            field=field,
        ) from None


def parse_point(lat: Any, lng: Any) -> Optional[Coordinate]:
    """
    Query point from raw ``lat``/``lng``.

    Both must be present for a spatial restriction; one without the other
    is ignored.
    """
    if lat in (None, "") or lng in (None, ""):
        return None
    latitude = _to_float(lat)
    if latitude is None or not -90.0 <= latitude <= 90.0:
        raise ValidationError(f"Invalid latitude '{lat}'", field="lat")
    longitude = _to_float(lng)
    if longitude is None or not -180.0 <= longitude <= 180.0:
        raise ValidationError(f"Invalid longitude '{lng}'", field="lng")
    return Coordinate(latitude, longitude)


# ═══════════════════════════════════════════════════════════════════════════
# Query objects
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class AlertListQuery:
    """Raw list parameters as they arrive from the transport layer."""
    type: Any = None
    severity: Any = None
    status: Any = AlertStatus.ACTIVE.value
    lat: Any = None
    lng: Any = None
    radius: Any = None
    limit: Any = None
    page: Any = None
    sort: Optional[str] = None


@dataclass(frozen=True)
class ListPlan:
    criteria: AlertFilter
    sort: str
    limit: int
    page: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class PaginationMeta:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
            "total": self.total,
        }


def plan_list(query: AlertListQuery, now: datetime) -> ListPlan:
    """Build the filter, sort and page window for a public list query."""
    status_raw = query.status
    if isinstance(status_raw, str) and status_raw.strip().lower() == STATUS_ANY:
        status_raw = None
    status = parse_enum(AlertStatus, status_raw, "status")

    point = parse_point(query.lat, query.lng)
    within = GeoFence(point, coerce_radius(query.radius)) if point else None

    criteria = AlertFilter(
        type=parse_enum(AlertType, query.type, "type"),
        severity=parse_enum(AlertSeverity, query.severity, "severity"),
        status=None if status in (None, AlertStatus.ACTIVE) else status,
        is_public=True,
        active_at=now if status is AlertStatus.ACTIVE else None,
        within=within,
    )
    return ListPlan(
        criteria=criteria,
        sort=(query.sort or "").strip() or DEFAULT_SORT,
        limit=coerce_limit(query.limit),
        page=coerce_page(query.page),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Read operations
# ═══════════════════════════════════════════════════════════════════════════

async def list_alerts(
    store: AlertStore, query: AlertListQuery, now: datetime,
) -> Tuple[List[AlertRecord], PaginationMeta]:
    plan = plan_list(query, now)
    records, total = await store.scan(
        plan.criteria, sort=plan.sort, limit=plan.limit, offset=plan.offset,
    )
    meta = PaginationMeta(page=plan.page, limit=plan.limit, total=total)
    logger.debug(
        "List alerts: %d of %d (page %d/%d)",
        len(records), total, meta.page, meta.total_pages,
        extra={"total": total},
    )
    return records, meta


async def get_alert(store: AlertStore, alert_id: str) -> AlertRecord:
    """Fetch one alert, counting the view atomically."""
    return await store.increment_views(alert_id)


async def list_alerts_near_location(
    store: AlertStore,
    lat: Any,
    lng: Any,
    now: datetime,
    radius: Any = None,
    type: Any = None,
    severity: Any = None,
) -> List[AlertRecord]:
    """
    Public, currently-in-effect alerts around a point.

    Most severe first, newest first within a severity, capped at
    ``NEAR_LOCATION_LIMIT``.
    """
    point = parse_point(lat, lng)
    if point is None:
        raise ValidationError(
            "lat and lng are required",
            field="lat" if lat in (None, "") else "lng",
        )
    radius_km = coerce_radius(radius)

    criteria = AlertFilter(
        type=parse_enum(AlertType, type, "type"),
        severity=parse_enum(AlertSeverity, severity, "severity"),
        is_public=True,
        active_at=now,
        within=GeoFence(point, radius_km),
    )
    records, total = await store.scan(
        criteria, sort=NEAR_LOCATION_SORT, limit=settings.NEAR_LOCATION_LIMIT,
    )
    logger.info(
        "Near-location query (%.4f, %.4f) r=%.1f km → %d alerts",
        point.latitude, point.longitude, radius_km, len(records),
        extra={"lat": point.latitude, "lng": point.longitude,
               "radius_km": radius_km, "total": total},
    )
    return records
