"""
aggregator.py — Catalog-wide alert statistics.

Facets (all computed against ONE captured ``now``):

    totalAlerts       every stored alert, public or not
    activeAlerts      validity window contains ``now``
    alertsByType      {type: count} for the types that occur
    alertsBySeverity  {severity: count} for the severities that occur
    recentAlerts      created within the last RECENT_WINDOW_DAYS (rolling)

The catalog facets (total, by type, by severity) are cached in Redis for
``REDIS_STATS_TTL`` seconds when caching is enabled; every mutation drops
the cached copy. ``activeAlerts`` and ``recentAlerts`` move with the clock
and are counted against the caller's ``now`` on every request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from backend.app.alerts.gatekeeper import STATS_CACHE_KEY, require_elevated
from backend.app.alerts.models import Identity
from backend.app.alerts.store import AlertStore
from backend.app.core.cache import cache_get, cache_set
from backend.app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class AlertStatistics:
    total_alerts: int = 0
    active_alerts: int = 0
    alerts_by_type: Dict[str, int] = field(default_factory=dict)
    alerts_by_severity: Dict[str, int] = field(default_factory=dict)
    recent_alerts: int = 0
    computed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAlerts": self.total_alerts,
            "activeAlerts": self.active_alerts,
            "alertsByType": dict(self.alerts_by_type),
            "alertsBySeverity": dict(self.alerts_by_severity),
            "recentAlerts": self.recent_alerts,
            "computedAt": self.computed_at.isoformat() if self.computed_at else None,
        }

    def catalog_facets(self) -> Dict[str, Any]:
        """The facets that only change on mutation."""
        return {
            "totalAlerts": self.total_alerts,
            "alertsByType": dict(self.alerts_by_type),
            "alertsBySeverity": dict(self.alerts_by_severity),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertStatistics":
        computed_at = data.get("computedAt")
        return cls(
            total_alerts=int(data.get("totalAlerts", 0)),
            active_alerts=int(data.get("activeAlerts", 0)),
            alerts_by_type=dict(data.get("alertsByType", {})),
            alerts_by_severity=dict(data.get("alertsBySeverity", {})),
            recent_alerts=int(data.get("recentAlerts", 0)),
            computed_at=datetime.fromisoformat(computed_at) if computed_at else None,
        )


async def compute_statistics(store: AlertStore, now: datetime) -> AlertStatistics:
    """All facets from one store transaction and one ``now``."""
    since = now - timedelta(days=settings.RECENT_WINDOW_DAYS)
    raw = await store.statistics(now=now, since=since)
    return AlertStatistics(
        total_alerts=raw["total"],
        active_alerts=raw["active"],
        alerts_by_type=raw["by_type"],
        alerts_by_severity=raw["by_severity"],
        recent_alerts=raw["recent"],
        computed_at=now,
    )


async def get_alert_statistics(
    store: AlertStore, identity: Optional[Identity], now: datetime,
) -> AlertStatistics:
    require_elevated(identity, "statistics")

    cached = await cache_get(STATS_CACHE_KEY)
    if cached is not None:
        logger.debug("Cache HIT: %s", STATS_CACHE_KEY)
        since = now - timedelta(days=settings.RECENT_WINDOW_DAYS)
        counts = await store.window_counts(now=now, since=since)
        return AlertStatistics.from_dict({
            **cached,
            "activeAlerts": counts["active"],
            "recentAlerts": counts["recent"],
            "computedAt": now.isoformat(),
        })

    stats = await compute_statistics(store, now)
    await cache_set(STATS_CACHE_KEY, stats.catalog_facets(), ttl=settings.REDIS_STATS_TTL)
    logger.info(
        "Alert statistics: total=%d active=%d recent=%d",
        stats.total_alerts, stats.active_alerts, stats.recent_alerts,
    )
    return stats
