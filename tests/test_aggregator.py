"""
test_aggregator.py — Catalog statistics.

Run with:
    pytest tests/test_aggregator.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.alerts import aggregator
from backend.app.alerts.aggregator import AlertStatistics
from backend.app.alerts.models import Identity
from backend.app.core.errors import ForbiddenError

NOW = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)

ADMIN = Identity(id="admin-1", role="admin")
USER = Identity(id="user-1", role="user")


class TestAlertStatistics:

    def test_wire_keys(self):
        stats = AlertStatistics(total_alerts=1, computed_at=NOW)
        assert set(stats.to_dict()) == {
            "totalAlerts", "activeAlerts", "alertsByType",
            "alertsBySeverity", "recentAlerts", "computedAt",
        }

    def test_from_dict_restores_cached_copy(self):
        original = AlertStatistics(
            total_alerts=5, active_alerts=3,
            alerts_by_type={"flood": 3, "landslide": 2},
            alerts_by_severity={"high": 5},
            recent_alerts=4, computed_at=NOW,
        )
        assert AlertStatistics.from_dict(original.to_dict()) == original


class TestGetAlertStatistics:

    async def test_counts_by_type_only_present_keys(self, service, make_alert):
        for _ in range(3):
            await make_alert(type="flood")
        for _ in range(2):
            await make_alert(type="landslide", severity="critical")

        stats = await service.get_alert_statistics(ADMIN)

        assert stats.total_alerts == 5
        assert stats.alerts_by_type == {"flood": 3, "landslide": 2}
        assert stats.alerts_by_severity == {"high": 3, "critical": 2}

    async def test_non_public_counted_in_total(self, service, make_alert):
        await make_alert(is_public=False)
        await make_alert()
        stats = await service.get_alert_statistics(ADMIN)
        assert stats.total_alerts == 2

    async def test_active_uses_window(self, service, make_alert):
        await make_alert(status="resolved")
        await make_alert(valid_from=NOW - timedelta(days=3), valid_until=NOW - timedelta(days=2))
        await make_alert(valid_from=NOW + timedelta(days=1), valid_until=NOW + timedelta(days=2))

        stats = await service.get_alert_statistics(ADMIN)

        assert stats.active_alerts == 1

    async def test_recent_is_rolling_seven_days(self, service, make_alert, clock):
        clock.now = NOW - timedelta(days=8)
        await make_alert(valid_from=None, valid_until=NOW + timedelta(days=1))
        clock.now = NOW - timedelta(days=6)
        await make_alert(valid_from=None, valid_until=NOW + timedelta(days=1))
        clock.now = NOW

        stats = await service.get_alert_statistics(ADMIN)

        assert stats.total_alerts == 2
        assert stats.recent_alerts == 1
        assert stats.computed_at == NOW

    async def test_empty_catalog(self, service):
        stats = await service.get_alert_statistics(ADMIN)
        assert stats.to_dict()["alertsByType"] == {}
        assert stats.total_alerts == 0

    @pytest.mark.parametrize("identity", [None, USER])
    async def test_requires_elevated_role(self, service, identity):
        with pytest.raises(ForbiddenError):
            await service.get_alert_statistics(identity)

    async def test_served_from_cache_when_present(self, store, monkeypatch):
        cached = AlertStatistics(total_alerts=42, alerts_by_type={"flood": 42}).catalog_facets()

        async def _cache_get(key):
            assert key == "alerts:stats"
            return cached

        async def _fail(*args, **kwargs):
            raise AssertionError("catalog facets must come from the cache")

        monkeypatch.setattr(aggregator, "cache_get", _cache_get)
        monkeypatch.setattr(store, "statistics", _fail)

        stats = await aggregator.get_alert_statistics(store, ADMIN, NOW)

        assert stats.total_alerts == 42
        assert stats.alerts_by_type == {"flood": 42}
        assert stats.computed_at == NOW


class TestCachedStatistics:

    @pytest.fixture
    def redis_cache(self, monkeypatch):
        entries = {}

        async def _cache_get(key):
            return entries.get(key)

        async def _cache_set(key, value, ttl=None):
            entries[key] = value
            return True

        monkeypatch.setattr(aggregator, "cache_get", _cache_get)
        monkeypatch.setattr(aggregator, "cache_set", _cache_set)
        return entries

    async def test_only_catalog_facets_are_cached(self, service, make_alert, redis_cache):
        await make_alert()
        await service.get_alert_statistics(ADMIN)
        assert redis_cache["alerts:stats"] == {
            "totalAlerts": 1,
            "alertsByType": {"flood": 1},
            "alertsBySeverity": {"high": 1},
        }

    async def test_active_recounted_after_expiry(self, service, make_alert, clock, redis_cache):
        await make_alert(valid_from=NOW - timedelta(hours=1), valid_until=NOW + timedelta(seconds=30))

        first = await service.get_alert_statistics(ADMIN)
        clock.advance(timedelta(seconds=45))
        second = await service.get_alert_statistics(ADMIN)

        assert first.active_alerts == 1
        assert second.active_alerts == 0
        assert second.total_alerts == 1
        assert second.computed_at == NOW + timedelta(seconds=45)

    async def test_recent_rolls_forward_between_hits(self, service, make_alert, clock, redis_cache):
        await make_alert(valid_until=NOW + timedelta(days=30))

        assert (await service.get_alert_statistics(ADMIN)).recent_alerts == 1
        clock.advance(timedelta(days=8))
        assert (await service.get_alert_statistics(ADMIN)).recent_alerts == 0
