"""
Pydantic response envelopes for the alert API.

Every successful response is ``{"success": true, "data": {...}}`` with an
optional human-readable ``message`` on mutations. Error envelopes are
built in ``backend.app.core.errors``.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    success: bool = True
    data: Dict[str, Any] = Field(default_factory=dict)


class MutationEnvelope(Envelope):
    message: str


class MessageEnvelope(BaseModel):
    success: bool = True
    message: str


class ServiceInfo(BaseModel):
    service: str
    version: str
    environment: str
    docs: str = "/docs"
