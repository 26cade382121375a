"""
Request middleware — access logging and correlation IDs.

Every request gets:
    • an ``X-Request-ID`` (propagated from the gateway or generated here)
    • an ``X-Process-Time`` response header
    • one structured access-log line, carrying the caller identity taken
      from ``X-User-Id`` so audit searches can follow a user across calls
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

# Paths that would flood the access log
_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log with timing; 4xx/5xx responses are logged as warnings."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        identity_id = request.headers.get("X-User-Id") or "anonymous"
        path = request.url.path

        set_request_context(
            request_id=request_id,
            client_ip=client_ip,
            endpoint=path,
            method=request.method,
            identity_id=identity_id,
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "%s %s → 500 (%.1fms) [%s]",
                request.method, path, duration_ms, identity_id,
                extra={"duration_ms": duration_ms, "status_code": 500},
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"

        if not path.startswith(_QUIET_PREFIXES):
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                "%s %s → %d (%.1fms) [%s]",
                request.method, path, response.status_code, elapsed_ms, identity_id,
                extra={
                    "duration_ms": elapsed_ms,
                    "status_code": response.status_code,
                    "endpoint": path,
                    "identity_id": identity_id,
                },
            )

        set_request_context()
        return response
