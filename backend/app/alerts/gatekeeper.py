"""
gatekeeper.py — Role-gated alert mutations.

Every write goes through here:

    1. Authorise   — caller must hold an elevated role, checked before the
                     payload is looked at or the store is touched
    2. Validate    — pydantic schema, first error reported with its field
    3. Stamp       — createdBy / updatedBy from the caller identity
    4. Persist     — single store transaction
    5. Invalidate  — drop cached statistics

The role check is an opaque capability predicate (``has_elevated_role``);
which roles count as elevated is configuration, not code.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from backend.app.alerts.models import AlertRecord, Identity
from backend.app.alerts.schemas import (
    AlertCreate,
    AlertPatch,
    location_columns,
    to_columns,
)
from backend.app.alerts.store import AlertStore
from backend.app.core.cache import cache_delete
from backend.app.core.config import settings
from backend.app.core.errors import ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = "alerts:stats"

S = TypeVar("S", bound=BaseModel)


def has_elevated_role(identity: Optional[Identity]) -> bool:
    """True when the caller may create, edit, delete or see statistics."""
    return identity is not None and identity.role in settings.ELEVATED_ROLES


def require_elevated(identity: Optional[Identity], action: str) -> Identity:
    if not has_elevated_role(identity):
        logger.warning(
            "Refused %s for %s",
            action, identity.to_dict() if identity else "anonymous",
        )
        raise ForbiddenError(action)
    return identity


def parse_payload(schema: Type[S], payload: Any) -> S:
    """Validate ``payload`` against ``schema``, reporting the offending field."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        message = first["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        raise ValidationError(message, field=field) from exc


def _creation_columns(data: AlertCreate) -> Dict[str, Any]:
    location = data.location
    values = {
        "title": data.title,
        "description": data.description,
        "type": data.type.value,
        "severity": data.severity.value,
        "status": data.status.value,
        "valid_from": data.valid_from,
        "valid_until": data.valid_until,
        "is_public": data.is_public,
        **location_columns(location, set(type(location).model_fields)),
    }
    if values["radius_km"] is None:
        values["radius_km"] = settings.DEFAULT_RADIUS_KM
    return values


async def _invalidate_stats() -> None:
    await cache_delete(STATS_CACHE_KEY)


# ═══════════════════════════════════════════════════════════════════════════
# Mutations
# ═══════════════════════════════════════════════════════════════════════════

async def create_alert(
    store: AlertStore, identity: Optional[Identity], payload: Any,
) -> AlertRecord:
    caller = require_elevated(identity, "create")
    data = parse_payload(AlertCreate, payload)

    values = _creation_columns(data)
    values["created_by"] = caller.id

    record = await store.create(values)
    await _invalidate_stats()
    logger.info(
        "Alert %s created by %s (%s/%s)",
        record.id, caller.id, record.type, record.severity,
        extra={"alert_id": record.id, "identity_id": caller.id},
    )
    return record


async def update_alert(
    store: AlertStore, identity: Optional[Identity], alert_id: str, patch: Any,
) -> AlertRecord:
    caller = require_elevated(identity, "update")
    data = parse_payload(AlertPatch, patch)

    changes = to_columns(data)
    changes["updated_by"] = caller.id

    record = await store.update(alert_id, changes)
    await _invalidate_stats()
    logger.info(
        "Alert %s updated by %s (fields=%s)",
        alert_id, caller.id, sorted(data.model_fields_set),
        extra={"alert_id": alert_id, "identity_id": caller.id},
    )
    return record


async def delete_alert(
    store: AlertStore, identity: Optional[Identity], alert_id: str,
) -> None:
    caller = require_elevated(identity, "delete")
    await store.delete(alert_id)
    await _invalidate_stats()
    logger.info(
        "Alert %s deleted by %s", alert_id, caller.id,
        extra={"alert_id": alert_id, "identity_id": caller.id},
    )
