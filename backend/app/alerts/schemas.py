"""
Pydantic schemas for alert mutation payloads.

Field names follow the wire format (camelCase aliases); attribute names
are snake_case. Unknown keys such as ``createdAt`` or ``statistics`` are
ignored, so clients can never set store-maintained fields.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from backend.app.alerts.models import AlertSeverity, AlertStatus, AlertType


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_coordinates(value: List[float]) -> List[float]:
    if len(value) != 2:
        raise ValueError("coordinates must be a [longitude, latitude] pair")
    lng, lat = value
    if not -180.0 <= lng <= 180.0:
        raise ValueError(f"longitude must be in [-180, 180], got {lng}")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude must be in [-90, 90], got {lat}")
    return [float(lng), float(lat)]


Coordinates = Annotated[List[float], AfterValidator(_check_coordinates)]
UTCDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

class LocationInput(_Schema):
    """GeoJSON-style point plus affected radius and address text."""
    coordinates: Coordinates = Field(..., examples=[[77.2090, 28.6139]])
    radius: Optional[float] = Field(None, ge=0, description="Affected radius in km")
    address: Optional[str] = Field(None, max_length=300)
    city: Optional[str] = Field(None, max_length=120)
    state: Optional[str] = Field(None, max_length=120)
    country: Optional[str] = Field(None, max_length=120)


class LocationPatch(LocationInput):
    """Every sub-field optional; omitted sub-fields keep their stored value."""
    coordinates: Optional[Coordinates] = None

    @field_validator("coordinates", "radius")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("cannot be null")
        return value


# ---------------------------------------------------------------------------
# Alert payloads
# ---------------------------------------------------------------------------

class AlertCreate(_Schema):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    type: AlertType
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.ACTIVE
    location: LocationInput
    valid_from: Optional[UTCDatetime] = Field(None, alias="validFrom")
    valid_until: UTCDatetime = Field(..., alias="validUntil")
    is_public: bool = Field(True, alias="isPublic")


# Patch fields that may be omitted but never nulled
_REQUIRED_ON_PATCH = (
    "title", "description", "type", "severity", "status",
    "location", "valid_from", "valid_until", "is_public",
)


class AlertPatch(_Schema):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    type: Optional[AlertType] = None
    severity: Optional[AlertSeverity] = None
    status: Optional[AlertStatus] = None
    location: Optional[LocationPatch] = None
    valid_from: Optional[UTCDatetime] = Field(None, alias="validFrom")
    valid_until: Optional[UTCDatetime] = Field(None, alias="validUntil")
    is_public: Optional[bool] = Field(None, alias="isPublic")

    @field_validator(*_REQUIRED_ON_PATCH)
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("cannot be null")
        return value


# ---------------------------------------------------------------------------
# Payload → column values
# ---------------------------------------------------------------------------

_LOCATION_COLUMNS = {
    "radius": "radius_km",
    "address": "address",
    "city": "city",
    "state": "state",
    "country": "country",
}

_SCALAR_COLUMNS = ("title", "description", "valid_from", "valid_until", "is_public")
_ENUM_COLUMNS = ("type", "severity", "status")


def location_columns(location: LocationInput, fields: Optional[set] = None) -> Dict[str, Any]:
    """Column values for the location sub-fields in ``fields`` (sent ones when None)."""
    present = location.model_fields_set if fields is None else fields
    values: Dict[str, Any] = {}
    if "coordinates" in present and location.coordinates is not None:
        values["longitude"], values["latitude"] = location.coordinates
    for name, column in _LOCATION_COLUMNS.items():
        if name in present:
            values[column] = getattr(location, name)
    return values


def to_columns(schema: BaseModel) -> Dict[str, Any]:
    """
    Column values for the fields the client actually sent.

    Enum members are stored as their string values.
    """
    sent = schema.model_fields_set
    values: Dict[str, Any] = {}
    for name in _SCALAR_COLUMNS:
        if name in sent:
            values[name] = getattr(schema, name)
    for name in _ENUM_COLUMNS:
        if name in sent:
            values[name] = getattr(schema, name).value
    location = getattr(schema, "location", None)
    if "location" in sent and location is not None:
        values.update(location_columns(location))
    return values
