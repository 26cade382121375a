"""
test_alerts_api.py — HTTP surface of the alert service.

Exercises the FastAPI routes through an in-process ASGI client backed by a
temporary SQLite store.

Run with:
    pytest tests/test_alerts_api.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from backend.app.core.errors import TransientStoreError

NOW = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)


def _make_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "title": "Flash flood in Yamuna floodplain",
        "description": "Evacuate low-lying colonies near Mayur Vihar.",
        "type": "flood",
        "severity": "critical",
        "location": {"coordinates": [77.2950, 28.6100], "radius": 10, "city": "New Delhi"},
        "validUntil": (NOW + timedelta(days=1)).isoformat(),
    }
    payload.update(overrides)
    return payload


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Reads
# ═══════════════════════════════════════════════════════════════════════════

class TestListEndpoint:

    async def test_envelope_and_pagination(self, client, make_alert):
        await make_alert()
        resp = await client.get("/api/alerts")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert len(body["data"]["alerts"]) == 1
        assert body["data"]["pagination"] == {
            "page": 1, "limit": 20, "totalPages": 1, "total": 1,
        }

    async def test_alert_wire_shape(self, client, make_alert):
        record = await make_alert()
        alert = (await client.get("/api/alerts")).json()["data"]["alerts"][0]

        assert alert["id"] == record.id
        assert alert["location"]["type"] == "Point"
        assert alert["location"]["coordinates"] == [77.2090, 28.6139]
        assert alert["location"]["address"] is None
        assert alert["isPublic"] is True
        assert alert["statistics"] == {"views": 0}
        assert alert["validUntil"].startswith("2024-01-06T12:00:00")

    async def test_malformed_paging_is_coerced(self, client, make_alert):
        await make_alert()
        resp = await client.get("/api/alerts", params={"limit": "lots", "page": "-2"})
        assert resp.status_code == 200
        assert resp.json()["data"]["pagination"]["limit"] == 20
        assert resp.json()["data"]["pagination"]["page"] == 1

    async def test_huge_page_is_empty_not_an_error(self, client, make_alert):
        await make_alert()
        resp = await client.get("/api/alerts", params={"page": "99999999999999999999"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["alerts"] == []
        assert data["pagination"]["total"] == 1
        assert data["pagination"]["totalPages"] == 1

    async def test_radius_filter(self, client, make_alert):
        await make_alert(latitude=28.70, longitude=77.10)
        params = {"lat": "28.6139", "lng": "77.2090"}

        wide = await client.get("/api/alerts", params={**params, "radius": "50"})
        narrow = await client.get("/api/alerts", params={**params, "radius": "10"})

        assert wide.json()["data"]["pagination"]["total"] == 1
        assert narrow.json()["data"]["pagination"]["total"] == 0

    async def test_invalid_filter_is_422(self, client):
        resp = await client.get("/api/alerts", params={"severity": "extreme"})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert resp.json()["success"] is False
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "severity"


class TestGetEndpoint:

    async def test_counts_view(self, client, make_alert):
        record = await make_alert()
        await client.get(f"/api/alerts/{record.id}")
        resp = await client.get(f"/api/alerts/{record.id}")
        assert resp.status_code == 200
        assert resp.json()["data"]["alert"]["statistics"]["views"] == 2

    async def test_not_found(self, client):
        resp = await client.get("/api/alerts/ALR-000000000000")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


class TestNearLocationEndpoint:

    async def test_sorted_and_counted(self, client, make_alert, clock):
        low = await make_alert(severity="low")
        clock.advance(timedelta(minutes=1))
        critical = await make_alert(severity="critical")

        resp = await client.get("/api/alerts/location/28.6139/77.2090")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["count"] == 2
        assert [a["id"] for a in data["alerts"]] == [critical.id, low.id]

    async def test_bad_coordinates(self, client):
        resp = await client.get("/api/alerts/location/95/77.2")
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["field"] == "lat"


class TestStatsEndpoint:

    async def test_admin(self, client, make_alert, admin_headers):
        await make_alert()
        resp = await client.get("/api/alerts/stats/overview", headers=admin_headers)
        assert resp.status_code == 200
        stats = resp.json()["data"]["stats"]
        assert stats["totalAlerts"] == 1
        assert stats["alertsByType"] == {"flood": 1}

    async def test_user_forbidden(self, client, user_headers):
        resp = await client.get("/api/alerts/stats/overview", headers=user_headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_anonymous_forbidden(self, client):
        resp = await client.get("/api/alerts/stats/overview")
        assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Writes
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateEndpoint:

    async def test_created(self, client, admin_headers):
        resp = await client.post("/api/alerts", json=_make_payload(), headers=admin_headers)
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Alert created successfully"
        alert = body["data"]["alert"]
        assert alert["createdBy"] == "admin-1"
        assert alert["location"]["radius"] == 10

        listed = await client.get("/api/alerts")
        assert listed.json()["data"]["pagination"]["total"] == 1

    async def test_anonymous_forbidden_even_with_bad_body(self, client):
        resp = await client.post("/api/alerts", json={"title": ""})
        assert resp.status_code == 403

    async def test_anonymous_forbidden_with_undecodable_body(self, client):
        resp = await client.post(
            "/api/alerts", content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_undecodable_body_from_admin_is_422(self, client, admin_headers):
        resp = await client.post(
            "/api/alerts", content=b"{not json",
            headers={**admin_headers, "Content-Type": "application/json"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["field"] == "body"

    async def test_validation_error_names_field(self, client, admin_headers):
        payload = _make_payload(location={"coordinates": [181, 28.6]})
        resp = await client.post("/api/alerts", json=payload, headers=admin_headers)
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["field"] == "location.coordinates"


class TestUpdateEndpoint:

    async def test_partial_update(self, client, make_alert, admin_headers):
        record = await make_alert()
        resp = await client.put(
            f"/api/alerts/{record.id}", json={"severity": "low"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        alert = resp.json()["data"]["alert"]
        assert alert["severity"] == "low"
        assert alert["title"] == record.title
        assert alert["updatedBy"] == "admin-1"
        assert resp.json()["message"] == "Alert updated successfully"

    async def test_user_forbidden(self, client, make_alert, user_headers):
        record = await make_alert()
        resp = await client.put(
            f"/api/alerts/{record.id}", json={"severity": "low"}, headers=user_headers,
        )
        assert resp.status_code == 403

    async def test_user_forbidden_with_undecodable_body(self, client, make_alert, user_headers):
        record = await make_alert()
        resp = await client.put(
            f"/api/alerts/{record.id}", content=b"[1, 2",
            headers={**user_headers, "Content-Type": "application/json"},
        )
        assert resp.status_code == 403

    async def test_not_found(self, client, admin_headers):
        resp = await client.put(
            "/api/alerts/ALR-000000000000", json={"severity": "low"}, headers=admin_headers,
        )
        assert resp.status_code == 404


class TestDeleteEndpoint:

    async def test_deleted(self, client, make_alert, admin_headers):
        record = await make_alert()
        resp = await client.delete(f"/api/alerts/{record.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Alert deleted successfully"}

        missing = await client.get(f"/api/alerts/{record.id}")
        assert missing.status_code == 404

    async def test_anonymous_forbidden(self, client, make_alert):
        record = await make_alert()
        resp = await client.delete(f"/api/alerts/{record.id}")
        assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Failures & probes
# ═══════════════════════════════════════════════════════════════════════════

class TestTransientFailure:

    async def test_store_unavailable_is_retryable_503(self, client, store, monkeypatch):
        async def _down(*args, **kwargs):
            raise TransientStoreError("scan", "database unavailable")

        monkeypatch.setattr(store, "scan", _down)

        resp = await client.get("/api/alerts")

        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "1"
        assert resp.json()["error"]["details"]["retryable"] is True


class TestProbes:

    async def test_liveness(self, client):
        resp = await client.get("/health/live")
        assert resp.status_code == 200
        assert resp.json() == {"status": "alive"}

    async def test_request_id_echoed(self, client):
        resp = await client.get("/health/live", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"

    async def test_root(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["service"] == "Hazard Alert Service"
