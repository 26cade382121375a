"""Test configuration: temp-file SQLite store, fixed clock, ASGI client."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict

# Caching off, no .env surprises
os.environ["REDIS_URL"] = ""
os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine  # noqa: E402

from backend.app.alerts.alert_service import AlertService  # noqa: E402
from backend.app.alerts.models import AlertRecord, Identity  # noqa: E402
from backend.app.alerts.store import AlertStore  # noqa: E402
from backend.app.api.v1.alerts import get_alert_service  # noqa: E402
from backend.app.core.database import (  # noqa: E402
    create_engine_for,
    create_session_factory,
    init_db,
)
from backend.app.main import app  # noqa: E402

# Friday 2024-01-05 12:00 UTC
NOW = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)

# New Delhi, Connaught Place
DELHI_LAT = 28.6139
DELHI_LNG = 77.2090

ADMIN = Identity(id="admin-1", role="admin")
USER = Identity(id="user-1", role="user")


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def alert_columns(**overrides: Any) -> Dict[str, Any]:
    """Store-level column values for a public flood alert in Delhi, in effect at NOW."""
    values: Dict[str, Any] = {
        "title": "Yamuna flood warning",
        "description": "River level above danger mark at Old Railway Bridge.",
        "type": "flood",
        "severity": "high",
        "status": "active",
        "latitude": DELHI_LAT,
        "longitude": DELHI_LNG,
        "radius_km": 50.0,
        "city": "New Delhi",
        "country": "India",
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=1),
        "is_public": True,
        "created_by": ADMIN.id,
    }
    values.update(overrides)
    return values


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'alerts.db'}", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine: AsyncEngine, clock: FrozenClock) -> AlertStore:
    return AlertStore(create_session_factory(engine), clock=clock)


@pytest.fixture
def service(store: AlertStore, clock: FrozenClock) -> AlertService:
    return AlertService(store, clock=clock)


@pytest.fixture
def make_alert(store: AlertStore) -> Callable[..., Awaitable[AlertRecord]]:
    """Factory persisting an alert straight through the store."""

    async def _factory(**overrides: Any) -> AlertRecord:
        return await store.create(alert_columns(**overrides))

    return _factory


@pytest.fixture
async def client(service: AlertService) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_alert_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client
    app.dependency_overrides.pop(get_alert_service, None)


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-User-Id": ADMIN.id, "X-User-Role": ADMIN.role}


@pytest.fixture
def user_headers() -> Dict[str, str]:
    return {"X-User-Id": USER.id, "X-User-Role": USER.role}
