"""
validity.py — Effective-activity predicate for alerts.

An alert is in effect at instant ``now`` iff

    valid_from ≤ now ≤ valid_until

Both ends are inclusive and the stored ``status`` label plays no part.
The same predicate is offered in two forms: a pure Python function for
in-memory checks and a SQL clause so the store can apply it before
counting and paginating.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement


class _Windowed(Protocol):
    valid_from: datetime
    valid_until: datetime


def is_active(alert: _Windowed, now: datetime) -> bool:
    """True iff ``now`` falls inside the alert's validity window."""
    return alert.valid_from <= now <= alert.valid_until


def active_at_clause(valid_from: Any, valid_until: Any, now: datetime) -> ColumnElement[bool]:
    """SQL rendition of :func:`is_active` over the given columns."""
    return and_(valid_from <= now, valid_until >= now)
