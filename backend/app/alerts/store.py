"""
store.py — Durable alert records on async SQLAlchemy.

Contract:
    create(values)                     → AlertRecord | ValidationError
    get(id)                            → AlertRecord | NotFoundError
    update(id, changes)                → AlertRecord | NotFoundError | ValidationError
    delete(id)                         → None        | NotFoundError
    scan(filter, sort, limit, offset)  → (records, total)
    increment_views(id)                → AlertRecord | NotFoundError
    statistics(now, since)             → raw facet counts
    window_counts(now, since)          → active / recent counts only

Every call is one transaction: mutations are all-or-nothing and a failed
read returns nothing. Every call is also bounded by
``STORE_TIMEOUT_SECONDS``; timeouts and connectivity failures surface as
``TransientStoreError`` and are never retried here.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from backend.app.alerts.geo_fence import GeoFence
from backend.app.alerts.models import (
    SEVERITY_RANK,
    AlertRecord,
    AlertSeverity,
    AlertStatus,
    AlertType,
    generate_alert_id,
)
from backend.app.alerts.validity import active_at_clause
from backend.app.core.config import settings
from backend.app.core.errors import NotFoundError, TransientStoreError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Filter & Sort
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AlertFilter:
    """Conjunction of optional predicates; ``None`` means "don't care"."""
    type: Optional[AlertType] = None
    severity: Optional[AlertSeverity] = None
    status: Optional[AlertStatus] = None
    is_public: Optional[bool] = None
    active_at: Optional[datetime] = None
    within: Optional[GeoFence] = None

    def conditions(self) -> List[ColumnElement[bool]]:
        conds: List[ColumnElement[bool]] = []
        if self.type is not None:
            conds.append(AlertRecord.type == self.type.value)
        if self.severity is not None:
            conds.append(AlertRecord.severity == self.severity.value)
        if self.status is not None:
            conds.append(AlertRecord.status == self.status.value)
        if self.is_public is not None:
            conds.append(AlertRecord.is_public == self.is_public)
        if self.active_at is not None:
            conds.append(
                active_at_clause(AlertRecord.valid_from, AlertRecord.valid_until, self.active_at)
            )
        if self.within is not None:
            conds.extend(self.within.prefilter(AlertRecord.latitude, AlertRecord.longitude))
        return conds


SEVERITY_ORDER = case(SEVERITY_RANK, value=AlertRecord.severity, else_=-1)

SORTABLE_FIELDS: Dict[str, Any] = {
    "createdAt": AlertRecord.created_at,
    "updatedAt": AlertRecord.updated_at,
    "validFrom": AlertRecord.valid_from,
    "validUntil": AlertRecord.valid_until,
    "severity": SEVERITY_ORDER,
    "type": AlertRecord.type,
    "title": AlertRecord.title,
    "views": AlertRecord.views,
}

DEFAULT_SORT = "-createdAt"


def parse_sort(spec: Optional[str]) -> List[Any]:
    """
    Turn ``"-severity,-createdAt"`` into ORDER BY clauses.

    Fields are separated by commas or whitespace; a leading ``-`` means
    descending. ``id`` is always appended as the final tie-break so that
    pages never overlap or skip records.
    """
    tokens = [t for t in re.split(r"[,\s]+", (spec or "").strip()) if t]
    if not tokens:
        tokens = [DEFAULT_SORT]

    clauses: List[Any] = []
    for token in tokens:
        descending = token.startswith("-")
        name = token.lstrip("+-")
        column = SORTABLE_FIELDS.get(name)
        if column is None:
            raise ValidationError(
                f"Cannot sort by '{name}'. Allowed: {sorted(SORTABLE_FIELDS)}",
                field="sort",
            )
        clauses.append(column.desc() if descending else column.asc())

    clauses.append(AlertRecord.id.asc())
    return clauses


# ═══════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════

def _check_window(valid_from: datetime, valid_until: datetime) -> None:
    if valid_from > valid_until:
        raise ValidationError(
            "validUntil must not be earlier than validFrom",
            field="validUntil",
        )


class AlertStore:
    """Alert persistence over an async session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Optional[Clock] = None,
        timeout: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or utcnow
        self._timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``work`` in one transaction under the store timeout."""

        async def _unit() -> T:
            async with self._session_factory() as session:
                async with session.begin():
                    return await work(session)

        try:
            return await asyncio.wait_for(_unit(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store %s timed out after %.1fs", operation, self._timeout)
            raise TransientStoreError(operation, f"timed out after {self._timeout}s") from exc
        except (OperationalError, InterfaceError) as exc:
            logger.error("Store %s failed: %s", operation, exc.orig if exc.orig else exc)
            raise TransientStoreError(operation, "database unavailable") from exc

    # ── CRUD ──

    async def create(self, values: Dict[str, Any]) -> AlertRecord:
        now = self._clock()
        data = dict(values)
        if data.get("valid_from") is None:
            data["valid_from"] = now
        if data.get("valid_until") is None:
            raise ValidationError("validUntil is required", field="validUntil")
        _check_window(data["valid_from"], data["valid_until"])

        record = AlertRecord(
            **data,
            id=generate_alert_id(),
            views=0,
            created_at=now,
            updated_at=now,
        )

        async def work(session: AsyncSession) -> AlertRecord:
            session.add(record)
            await session.flush()
            return record

        return await self._run("create", work)

    async def get(self, alert_id: str) -> AlertRecord:
        async def work(session: AsyncSession) -> AlertRecord:
            record = await session.get(AlertRecord, alert_id)
            if record is None:
                raise NotFoundError("Alert", id=alert_id)
            return record

        return await self._run("get", work)

    async def update(self, alert_id: str, changes: Dict[str, Any]) -> AlertRecord:
        async def work(session: AsyncSession) -> AlertRecord:
            record = await session.get(AlertRecord, alert_id, with_for_update=True)
            if record is None:
                raise NotFoundError("Alert", id=alert_id)
            for attr, value in changes.items():
                setattr(record, attr, value)
            _check_window(record.valid_from, record.valid_until)
            record.updated_at = self._clock()
            await session.flush()
            return record

        return await self._run("update", work)

    async def delete(self, alert_id: str) -> None:
        async def work(session: AsyncSession) -> None:
            result = await session.execute(
                delete(AlertRecord).where(AlertRecord.id == alert_id)
            )
            if result.rowcount == 0:
                raise NotFoundError("Alert", id=alert_id)

        await self._run("delete", work)

    async def increment_views(self, alert_id: str) -> AlertRecord:
        """Atomically bump ``views`` by one and return the fresh record."""

        async def work(session: AsyncSession) -> AlertRecord:
            result = await session.execute(
                update(AlertRecord)
                .where(AlertRecord.id == alert_id)
                .values(views=AlertRecord.views + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("Alert", id=alert_id)
            record = await session.get(AlertRecord, alert_id, populate_existing=True)
            return record

        return await self._run("increment_views", work)

    # ── Scans ──

    async def scan(
        self,
        criteria: AlertFilter,
        sort: Optional[str] = DEFAULT_SORT,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[AlertRecord], int]:
        """
        Filtered, sorted, paginated read.

        ``total`` counts every match before ``limit``/``offset``. With a
        geo-fence the candidate set is confirmed by Haversine in Python,
        so counting and slicing happen after that confirmation.
        """
        order_by = parse_sort(sort)
        conditions = criteria.conditions()

        async def work(session: AsyncSession) -> Tuple[List[AlertRecord], int]:
            stmt = select(AlertRecord).where(*conditions).order_by(*order_by)

            if criteria.within is None:
                total = int(await session.scalar(
                    select(func.count()).select_from(AlertRecord).where(*conditions)
                ) or 0)
                # Pages past the end are empty; the offset may exceed SQL INTEGER
                if offset >= total:
                    return [], total
                if limit is not None:
                    stmt = stmt.limit(limit)
                if offset:
                    stmt = stmt.offset(offset)
                records = list((await session.scalars(stmt)).all())
                return records, total

            candidates = list((await session.scalars(stmt)).all())
            matched = criteria.within.confirm(candidates)
            end = None if limit is None else offset + limit
            return matched[offset:end], len(matched)

        return await self._run("scan", work)

    async def count_all(self) -> int:
        async def work(session: AsyncSession) -> int:
            return int(await session.scalar(select(func.count()).select_from(AlertRecord)) or 0)

        return await self._run("count", work)

    async def statistics(self, now: datetime, since: datetime) -> Dict[str, Any]:
        """
        Facet counts in one read transaction.

        Totals, active and recent counts come from a single aggregate row;
        the type and severity groupings are two GROUP BY queries in the
        same transaction.
        """
        async def work(session: AsyncSession) -> Dict[str, Any]:
            row = (await session.execute(
                select(func.count(), *_window_sums(now, since)).select_from(AlertRecord)
            )).one()

            by_type = (await session.execute(
                select(AlertRecord.type, func.count()).group_by(AlertRecord.type)
            )).all()
            by_severity = (await session.execute(
                select(AlertRecord.severity, func.count()).group_by(AlertRecord.severity)
            )).all()

            return {
                "total": int(row[0]),
                "active": int(row[1]),
                "recent": int(row[2]),
                "by_type": {key: int(count) for key, count in by_type},
                "by_severity": {key: int(count) for key, count in by_severity},
            }

        return await self._run("statistics", work)

    async def window_counts(self, now: datetime, since: datetime) -> Dict[str, int]:
        """Active count at ``now`` and number created since ``since``."""
        async def work(session: AsyncSession) -> Dict[str, int]:
            row = (await session.execute(
                select(*_window_sums(now, since)).select_from(AlertRecord)
            )).one()
            return {"active": int(row[0]), "recent": int(row[1])}

        return await self._run("window_counts", work)


def _window_sums(now: datetime, since: datetime) -> List[Any]:
    active = active_at_clause(AlertRecord.valid_from, AlertRecord.valid_until, now)
    return [
        func.coalesce(func.sum(case((active, 1), else_=0)), 0),
        func.coalesce(func.sum(case((AlertRecord.created_at >= since, 1), else_=0)), 0),
    ]
