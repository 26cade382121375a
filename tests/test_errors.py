"""
test_errors.py — Error envelope, the unhandled-exception handler and settings defaults.

Run with:
    pytest tests/test_errors.py -v
"""

from __future__ import annotations

import json

import pytest
from fastapi import FastAPI
from starlette.requests import Request

from backend.app.core.config import Settings, settings
from backend.app.core.errors import (
    AlertServiceError,
    InternalError,
    TransientStoreError,
    ValidationError,
    register_error_handlers,
)


def _make_request(path: str = "/api/alerts") -> Request:
    return Request({"type": "http", "method": "GET", "path": path, "headers": []})


def _handler_for(exc_type):
    app = FastAPI()
    register_error_handlers(app)
    return app.exception_handlers[exc_type]


def _body(response) -> dict:
    return json.loads(response.body)


class TestUnhandledException:

    async def test_generic_message_by_default(self, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", False)
        handler = _handler_for(Exception)
        response = await handler(_make_request(), RuntimeError("password=hunter2"))

        body = _body(response)
        assert response.status_code == 500
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["message"] == "Internal server error"
        assert "details" not in body["error"]
        assert "hunter2" not in response.body.decode()

    async def test_debug_exposes_exception_outside_production(self, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", True)
        monkeypatch.setattr(settings, "ENVIRONMENT", "development")
        handler = _handler_for(Exception)

        body = _body(await handler(_make_request(), RuntimeError("boom")))

        assert body["error"]["message"] == "boom"
        assert "traceback" in body["error"]["details"]

    async def test_debug_ignored_in_production(self, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", True)
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        handler = _handler_for(Exception)

        body = _body(await handler(_make_request(), RuntimeError("boom")))

        assert body["error"]["message"] == "Internal server error"
        assert "details" not in body["error"]
        assert "path" not in body["error"]


class TestServiceErrors:

    async def test_validation_error_names_field(self):
        handler = _handler_for(AlertServiceError)
        response = await handler(_make_request(), ValidationError("bad", field="severity"))
        body = _body(response)
        assert response.status_code == 422
        assert body["success"] is False
        assert body["error"]["details"] == {"field": "severity"}
        assert body["error"]["path"] == "/api/alerts"

    async def test_transient_error_sets_retry_after(self):
        handler = _handler_for(AlertServiceError)
        response = await handler(_make_request(), TransientStoreError("scan", "timeout"))
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert _body(response)["error"]["details"]["retryable"] is True

    def test_internal_error_default_message(self):
        error = InternalError()
        assert error.status_code == 500
        assert error.message == "Internal server error"

    @pytest.mark.parametrize("field", [None, ""])
    def test_validation_error_without_field(self, field):
        assert ValidationError("bad", field=field).details == {}


class TestSettingsDefaults:

    def test_debug_is_off_unless_configured(self):
        assert Settings.model_fields["DEBUG"].default is False

    @pytest.mark.parametrize("name", ["HOST", "PORT", "WORKERS", "RELOAD"])
    def test_no_server_settings(self, name):
        assert name not in Settings.model_fields
