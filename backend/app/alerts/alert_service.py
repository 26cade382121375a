"""
alert_service.py — Entry point for every alert operation.

The transport layer talks only to ``AlertService``; the service reads the
clock once per call and routes the call to the right component:

    ┌──────────────┐   writes   ┌──────────────┐
    │  transport   │ ─────────▶ │  gatekeeper  │ ──┐
    │ (HTTP / CLI) │            └──────────────┘   │
    │              │   reads    ┌──────────────┐   │   ┌─────────────┐
    │              │ ─────────▶ │    query     │ ──┼─▶ │ AlertStore  │
    │              │   stats    ┌──────────────┐   │   │ + geo_fence │
    │              │ ─────────▶ │  aggregator  │ ──┘   └─────────────┘
    └──────────────┘            └──────────────┘

Collaborators are injected: the store (persistence) and the clock
(``Callable[[], datetime]`` returning aware UTC instants). Identity comes
in per call as ``Identity`` or ``None`` for anonymous callers.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from backend.app.alerts import aggregator, gatekeeper, query
from backend.app.alerts.aggregator import AlertStatistics
from backend.app.alerts.models import AlertRecord, Identity
from backend.app.alerts.query import AlertListQuery, PaginationMeta
from backend.app.alerts.store import AlertStore, Clock, utcnow

logger = logging.getLogger(__name__)


class AlertService:
    """Facade over the alert store, planner, gatekeeper and aggregator."""

    def __init__(self, store: AlertStore, clock: Optional[Clock] = None):
        self.store = store
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    # ── Reads ──

    async def list_alerts(
        self, filters: AlertListQuery,
    ) -> Tuple[List[AlertRecord], PaginationMeta]:
        return await query.list_alerts(self.store, filters, self.now())

    async def get_alert(self, alert_id: str) -> AlertRecord:
        return await query.get_alert(self.store, alert_id)

    async def list_alerts_near_location(
        self,
        lat: Any,
        lng: Any,
        radius: Any = None,
        type: Any = None,
        severity: Any = None,
    ) -> List[AlertRecord]:
        return await query.list_alerts_near_location(
            self.store, lat, lng, self.now(),
            radius=radius, type=type, severity=severity,
        )

    async def get_alert_statistics(self, identity: Optional[Identity]) -> AlertStatistics:
        return await aggregator.get_alert_statistics(self.store, identity, self.now())

    # ── Writes ──

    async def create_alert(self, identity: Optional[Identity], payload: Any) -> AlertRecord:
        return await gatekeeper.create_alert(self.store, identity, payload)

    async def update_alert(
        self, identity: Optional[Identity], alert_id: str, patch: Any,
    ) -> AlertRecord:
        return await gatekeeper.update_alert(self.store, identity, alert_id, patch)

    async def delete_alert(self, identity: Optional[Identity], alert_id: str) -> None:
        await gatekeeper.delete_alert(self.store, identity, alert_id)
