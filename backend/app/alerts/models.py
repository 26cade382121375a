"""
models.py — Data structures for the hazard alert catalog.

Defines:
    • AlertType     — closed hazard enumeration
    • AlertSeverity — totally ordered severity levels
    • AlertStatus   — administrative lifecycle label
    • Identity      — caller identity resolved upstream
    • AlertRecord   — the persisted alert (SQLAlchemy ORM)

═══════════════════════════════════════════════════════════════════════════
STORED STATUS vs EFFECTIVE ACTIVITY
═══════════════════════════════════════════════════════════════════════════

An alert carries two independent notions of "active":

    status        administrative label set by editors
                  (draft / active / resolved / expired)
    window        [valid_from, valid_until] instant range

Read paths that ask for "active" alerts test the window against the
current instant and ignore the stored label. The label is for display
and manual curation only. See ``validity.py``.

═══════════════════════════════════════════════════════════════════════════
SEVERITY ORDERING
═══════════════════════════════════════════════════════════════════════════

    low (0) < medium (1) < high (2) < critical (3)

Sorting by severity always goes through SEVERITY_RANK, never through
string comparison ("critical" < "high" lexically).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base, UTCDateTime
from backend.app.spatial.radius_utils import Coordinate


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertType(str, Enum):
    """Hazard categories."""
    LANDSLIDE      = "landslide"
    FLOOD          = "flood"
    SEVERE_WEATHER = "severe_weather"
    EVACUATION     = "evacuation"
    OTHER          = "other"


class AlertSeverity(str, Enum):
    """Severity levels, ordered via ``rank``."""
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.value]


class AlertStatus(str, Enum):
    """Administrative lifecycle label (independent of the validity window)."""
    DRAFT    = "draft"
    ACTIVE   = "active"
    RESOLVED = "resolved"
    EXPIRED  = "expired"


SEVERITY_RANK: Dict[str, int] = {
    AlertSeverity.LOW.value: 0,
    AlertSeverity.MEDIUM.value: 1,
    AlertSeverity.HIGH.value: 2,
    AlertSeverity.CRITICAL.value: 3,
}


# ═══════════════════════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Identity:
    """
    Caller identity as resolved by the upstream identity check.

    ``None`` is used for anonymous callers throughout the service.
    """
    id: str
    role: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role}


# ═══════════════════════════════════════════════════════════════════════════
# Persisted alert
# ═══════════════════════════════════════════════════════════════════════════

def generate_alert_id() -> str:
    return f"ALR-{uuid.uuid4().hex[:12].upper()}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class AlertRecord(Base):
    """A time-bounded, geotagged hazard alert."""

    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_lat_lng", "latitude", "longitude"),
        Index("ix_alerts_window", "valid_from", "valid_until"),
    )

    id: Mapped[str] = mapped_column(String(16), primary_key=True, default=generate_alert_id)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(32), index=True)
    severity: Mapped[str] = mapped_column(String(16), index=True)
    status: Mapped[str] = mapped_column(String(16), index=True, default=AlertStatus.ACTIVE.value)

    # Location: point + affected radius + free-text address
    longitude: Mapped[float] = mapped_column(Float)
    latitude: Mapped[float] = mapped_column(Float)
    radius_km: Mapped[float] = mapped_column(Float, default=50.0)
    address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    valid_from: Mapped[datetime] = mapped_column(UTCDateTime())
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime())
    is_public: Mapped[bool] = mapped_column(Boolean, index=True, default=True)

    created_by: Mapped[str] = mapped_column(String(64))
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    views: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_now)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "severity": self.severity,
            "status": self.status,
            "location": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
                "radius": self.radius_km,
                "address": self.address,
                "city": self.city,
                "state": self.state,
                "country": self.country,
            },
            "validFrom": _iso(self.valid_from),
            "validUntil": _iso(self.valid_until),
            "isPublic": self.is_public,
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "statistics": {"views": self.views},
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<AlertRecord {self.id} {self.type}/{self.severity}>"
