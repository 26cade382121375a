"""
FastAPI routes: Hazard alert lifecycle.

    GET    /api/alerts                          — public list (filters, sort, pages)
    GET    /api/alerts/stats/overview           — catalog statistics (admin)
    GET    /api/alerts/location/{lat}/{lng}     — in-effect alerts near a point
    GET    /api/alerts/{alert_id}               — one alert (counts a view)
    POST   /api/alerts                          — create (admin)
    PUT    /api/alerts/{alert_id}               — partial update (admin)
    DELETE /api/alerts/{alert_id}               — delete (admin)

Caller identity is taken from the ``X-User-Id`` / ``X-User-Role`` headers
set by the upstream gateway; a request without ``X-User-Id`` is anonymous.

Query parameters arrive as raw strings so the service can coerce paging
values and report malformed filters through the common error envelope.
Write bodies are decoded only after the role check.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from backend.app.alerts.alert_service import AlertService
from backend.app.alerts.gatekeeper import require_elevated
from backend.app.alerts.models import Identity
from backend.app.alerts.query import AlertListQuery
from backend.app.alerts.store import AlertStore
from backend.app.api.schemas import Envelope, MessageEnvelope, MutationEnvelope
from backend.app.core.database import get_session_factory
from backend.app.core.errors import ValidationError
from backend.app.core.logging_config import update_request_context

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

_service: Optional[AlertService] = None


def get_alert_service() -> AlertService:
    """Process-wide service bound to the configured database."""
    global _service
    if _service is None:
        _service = AlertService(AlertStore(get_session_factory()))
    return _service


def reset_alert_service() -> None:
    global _service
    _service = None


async def get_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Identity]:
    if not x_user_id:
        return None
    identity = Identity(id=x_user_id, role=(x_user_role or "user").strip().lower())
    update_request_context(identity_id=identity.id, role=identity.role)
    return identity


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=Envelope,
    summary="List public alerts",
    description=(
        "Public alerts matching the filters. ``status`` defaults to ``active`` "
        "(validity window contains now); ``status=all`` disables it. "
        "``lat``/``lng``/``radius`` restrict to a great-circle radius."
    ),
)
async def list_alerts(
    alert_type: Optional[str] = Query(None, alias="type", examples=["flood"]),
    severity: Optional[str] = Query(None, examples=["high"]),
    status: Optional[str] = Query("active", examples=["active"]),
    lat: Optional[str] = Query(None, examples=["28.6139"]),
    lng: Optional[str] = Query(None, examples=["77.2090"]),
    radius: Optional[str] = Query(None, description="Radius in km (default 50)"),
    limit: Optional[str] = Query(None, description="Page size, 1–100 (default 20)"),
    page: Optional[str] = Query(None, description="1-based page number"),
    sort: Optional[str] = Query(None, examples=["-severity,-createdAt"]),
    service: AlertService = Depends(get_alert_service),
):
    filters = AlertListQuery(
        type=alert_type, severity=severity, status=status,
        lat=lat, lng=lng, radius=radius,
        limit=limit, page=page, sort=sort,
    )
    records, meta = await service.list_alerts(filters)
    return Envelope(data={
        "alerts": [r.to_dict() for r in records],
        "pagination": meta.to_dict(),
    })


@router.get(
    "/stats/overview",
    response_model=Envelope,
    summary="Alert statistics (admin)",
)
async def alert_statistics(
    identity: Optional[Identity] = Depends(get_identity),
    service: AlertService = Depends(get_alert_service),
):
    stats = await service.get_alert_statistics(identity)
    return Envelope(data={"stats": stats.to_dict()})


@router.get(
    "/location/{lat}/{lng}",
    response_model=Envelope,
    summary="In-effect alerts near a point",
    description="Most severe first, newest first within a severity, at most 50.",
)
async def alerts_near_location(
    lat: str,
    lng: str,
    radius: Optional[str] = Query(None, description="Radius in km (default 50)"),
    alert_type: Optional[str] = Query(None, alias="type"),
    severity: Optional[str] = Query(None),
    service: AlertService = Depends(get_alert_service),
):
    records = await service.list_alerts_near_location(
        lat, lng, radius=radius, type=alert_type, severity=severity,
    )
    return Envelope(data={
        "alerts": [r.to_dict() for r in records],
        "count": len(records),
    })


@router.get(
    "/{alert_id}",
    response_model=Envelope,
    summary="Get one alert",
)
async def get_alert(alert_id: str, service: AlertService = Depends(get_alert_service)):
    record = await service.get_alert(alert_id)
    return Envelope(data={"alert": record.to_dict()})


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def read_json_body(request: Request) -> Any:
    """Decoded request body; ``None`` when empty."""
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Request body is not valid JSON", field="body") from None


@router.post(
    "",
    status_code=201,
    response_model=MutationEnvelope,
    summary="Create an alert (admin)",
)
async def create_alert(
    request: Request,
    identity: Optional[Identity] = Depends(get_identity),
    service: AlertService = Depends(get_alert_service),
):
    require_elevated(identity, "create")
    payload = await read_json_body(request)
    record = await service.create_alert(identity, payload)
    return MutationEnvelope(data={"alert": record.to_dict()}, message="Alert created successfully")


@router.put(
    "/{alert_id}",
    response_model=MutationEnvelope,
    summary="Update an alert (admin)",
)
async def update_alert(
    alert_id: str,
    request: Request,
    identity: Optional[Identity] = Depends(get_identity),
    service: AlertService = Depends(get_alert_service),
):
    require_elevated(identity, "update")
    patch = await read_json_body(request)
    record = await service.update_alert(identity, alert_id, patch)
    return MutationEnvelope(data={"alert": record.to_dict()}, message="Alert updated successfully")


@router.delete(
    "/{alert_id}",
    response_model=MessageEnvelope,
    summary="Delete an alert (admin)",
)
async def delete_alert(
    alert_id: str,
    identity: Optional[Identity] = Depends(get_identity),
    service: AlertService = Depends(get_alert_service),
):
    await service.delete_alert(identity, alert_id)
    return MessageEnvelope(message="Alert deleted successfully")
