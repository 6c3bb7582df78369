"""
audit/store.py -- SQLAlchemy Core persistence for activity log entries.

Pattern: Repository + Data Mapper, same shape as auth/store.py. details is a
JSON object serialized to TEXT so the table stays portable across SQLite and
PostgreSQL.

Timestamps are ISO-8601 UTC strings produced by one function (_now_iso), so
lexicographic comparison matches chronological order and range filters can be
plain string comparisons.

Security: all queries use bound parameters. The ip filter is a LIKE with the
user's text as a bound value, never interpolated.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, func, select

from audit.models import ActivityLog, LogFilter
from core.database import make_engine

_metadata = MetaData()

_logs = Table(
    "activity_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36)),
    Column("action", String(64), nullable=False),
    Column("timestamp", String(32), nullable=False),
    Column("ip", String(64), nullable=False, server_default="unknown"),
    Column("user_agent", Text, nullable=False, server_default="unknown"),
    Column("details", Text, nullable=False, server_default="{}"),
    Index("ix_activity_logs_user_ts", "user_id", "timestamp"),
    Index("ix_activity_logs_action_ts", "action", "timestamp"),
    Index("ix_activity_logs_ip_ts", "ip", "timestamp"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class ActivityLogStore:
    """Repository for ActivityLog entries."""

    def __init__(self, db_url: str) -> None:
        self.engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def create_log(self, entry: ActivityLog) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _logs.insert().values(
                    user_id=entry.user_id,
                    action=entry.action,
                    timestamp=entry.timestamp or _now_iso(),
                    ip=entry.ip or "unknown",
                    user_agent=entry.user_agent or "unknown",
                    details=json.dumps(entry.details, default=str),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    @staticmethod
    def _where(flt: LogFilter) -> list:
        clauses = []
        if flt.user_id:
            clauses.append(_logs.c.user_id == flt.user_id)
        if flt.action:
            clauses.append(_logs.c.action == flt.action)
        if flt.ip:
            clauses.append(func.lower(_logs.c.ip).like(f"%{flt.ip.lower()}%"))
        if flt.start is not None:
            clauses.append(_logs.c.timestamp >= _iso(flt.start))
        if flt.end is not None:
            clauses.append(_logs.c.timestamp <= _iso(flt.end))
        return clauses

    def list_logs(
        self,
        flt: LogFilter = LogFilter(),
        page: int = 1,
        limit: int = 50,
        newest_first: bool = True,
    ) -> list[ActivityLog]:
        order = _logs.c.timestamp.desc() if newest_first else _logs.c.timestamp.asc()
        query = _logs.select().where(*self._where(flt)).order_by(order, _logs.c.id.desc())
        query = query.offset((page - 1) * limit).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_log(r) for r in rows]

    def count_logs(self, flt: LogFilter = LogFilter()) -> int:
        query = select(func.count()).select_from(_logs).where(*self._where(flt))
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def action_counts(self, flt: LogFilter = LogFilter(), top: Optional[int] = 20) -> dict[str, int]:
        """Return {action: count}, most frequent first, capped at `top` actions (None: all)."""
        count = func.count().label("n")
        query = (
            select(_logs.c.action, count)
            .where(*self._where(flt))
            .group_by(_logs.c.action)
            .order_by(count.desc(), _logs.c.action)
        )
        if top is not None:
            query = query.limit(top)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return {row[0]: row[1] for row in rows}

    # ------------------------------------------------------------------
    # Aggregates for the statistics endpoints
    # ------------------------------------------------------------------

    def _grouped(self, column, flt: LogFilter, top: Optional[int]) -> list[dict]:
        count = func.count().label("count")
        unique_users = func.count(func.distinct(_logs.c.user_id)).label("unique_users")
        query = (
            select(column.label("key"), count, unique_users)
            .where(*self._where(flt))
            .group_by(column)
            .order_by(count.desc(), column)
        )
        if top is not None:
            query = query.limit(top)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [{"key": row[0], "count": row[1], "unique_users": row[2]} for row in rows]

    def action_summary(self, flt: LogFilter = LogFilter()) -> list[dict]:
        """Per-action entry counts and distinct known users, most frequent first."""
        return [
            {"action": r["key"], "count": r["count"], "unique_users": r["unique_users"]}
            for r in self._grouped(_logs.c.action, flt, None)
        ]

    def ip_summary(self, flt: LogFilter = LogFilter(), top: int = 10) -> list[dict]:
        """Per-address entry counts and distinct known users, busiest first."""
        return [
            {"ip": r["key"], "count": r["count"], "unique_users": r["unique_users"]}
            for r in self._grouped(_logs.c.ip, flt, top)
        ]

    def user_activity(
        self,
        flt: LogFilter = LogFilter(),
        top: Optional[int] = None,
        most_recent_first: bool = False,
    ) -> list[dict]:
        """Entry count and latest timestamp per user; anonymous entries are skipped.

        Ordered by count (ties by recency) unless most_recent_first is set.
        """
        count = func.count().label("count")
        last = func.max(_logs.c.timestamp).label("last_activity")
        order = (last.desc(), count.desc()) if most_recent_first else (count.desc(), last.desc())
        query = (
            select(_logs.c.user_id, count, last)
            .where(_logs.c.user_id.is_not(None), *self._where(flt))
            .group_by(_logs.c.user_id)
            .order_by(*order)
        )
        if top is not None:
            query = query.limit(top)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [{"user_id": row[0], "count": row[1], "last_activity": row[2]} for row in rows]

    def hourly_counts(self, flt: LogFilter = LogFilter()) -> dict[int, int]:
        """Return {UTC hour: count}. Timestamps are ISO-8601, so the hour is characters 12-13."""
        hour = func.substr(_logs.c.timestamp, 12, 2).label("hour")
        query = select(hour, func.count()).where(*self._where(flt)).group_by(hour).order_by(hour)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return {int(row[0]): row[1] for row in rows}

    def export_logs(self, flt: LogFilter = LogFilter(), limit: int = 10000) -> list[ActivityLog]:
        return self.list_logs(flt, page=1, limit=limit)

    def delete_older_than(self, days: int) -> tuple[int, str]:
        """Delete entries older than `days` days. Returns (deleted_count, cutoff_iso)."""
        cutoff = _iso(datetime.now(timezone.utc) - timedelta(days=days))
        with self.engine.connect() as conn:
            result = conn.execute(_logs.delete().where(_logs.c.timestamp < cutoff))
            conn.commit()
        return result.rowcount, cutoff

    def close(self) -> None:
        self.engine.dispose()


def _row_to_log(row) -> ActivityLog:
    try:
        details = json.loads(row.details) if row.details else {}
    except ValueError:
        details = {}
    return ActivityLog(
        id=row.id,
        user_id=row.user_id,
        action=row.action,
        timestamp=row.timestamp,
        ip=row.ip,
        user_agent=row.user_agent,
        details=details,
    )
