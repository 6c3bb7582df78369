"""
api/routes/v1/logs.py -- Activity log REST endpoints.

Routes:
  GET    /api/v1/logs          -- filtered, paginated log entries (admin, manager)
  GET    /api/v1/logs/stats    -- per-action, per-hour, per-user and per-ip activity (admin, manager)
  GET    /api/v1/logs/export   -- download as JSON or CSV, up to 10 000 rows (admin, manager)
  DELETE /api/v1/logs/cleanup  -- delete entries older than N days (admin)

Filters shared by list and export:
  user    -- exact user id
  action  -- exact action name (login-success, role-change, ...)
  ip      -- case-insensitive substring
  start / end -- ISO-8601 datetimes, inclusive; start must not be after end

Each entry is returned with the public profile of the user it belongs to (or
null for anonymous events and deleted users).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from api.models import Envelope, Pagination
from audit.models import ActivityLog, LogFilter
from auth.dependencies import request_context
from auth.models import AuthenticatedUser, Role
from auth.rbac import require_roles
from core.errors import ValidationError
from core.formatter import activity_rows, log_to_dict, logs_to_csv

logger = logging.getLogger("adminpanel.api")

router = APIRouter()

_staff = require_roles(Role.admin, Role.manager)
_admin_only = require_roles(Role.admin)

EXPORT_MAX_ROWS = 10000

STATS_PERIODS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
STATS_TOP_N = 10


def _log_filter(
    user: Optional[str] = Query(default=None, max_length=36),
    action: Optional[str] = Query(default=None, max_length=64),
    ip: Optional[str] = Query(default=None, max_length=64),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
) -> LogFilter:
    # Naive datetimes are UTC, the same zone the log timestamps are written in.
    start = start.replace(tzinfo=timezone.utc) if start and start.tzinfo is None else start
    end = end.replace(tzinfo=timezone.utc) if end and end.tzinfo is None else end
    if start is not None and end is not None and start > end:
        raise ValidationError("Start date must be before end date.", code="INVALID_DATE_RANGE")
    return LogFilter(user_id=user, action=action, ip=ip, start=start, end=end)


def _owners(request: Request, logs: list[ActivityLog]) -> dict[str, dict]:
    """Look up the public profile of every distinct user referenced by `logs`."""
    users = request.app.state.user_store.get_by_ids(log.user_id for log in logs)
    return {user_id: user.public_profile() for user_id, user in users.items()}


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get("/logs", response_model=Envelope, dependencies=[Depends(_staff)])
def list_logs(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    flt: LogFilter = Depends(_log_filter),
) -> Envelope:
    log_store = request.app.state.log_store
    logs = log_store.list_logs(flt, page=page, limit=limit)
    total = log_store.count_logs(flt)
    owners = _owners(request, logs)
    return Envelope(
        data={
            "logs": [log_to_dict(log, owners.get(log.user_id)) for log in logs],
            "pagination": Pagination.build(page, limit, total).model_dump(),
        }
    )


@router.get("/logs/stats", response_model=Envelope, dependencies=[Depends(_staff)])
def log_stats(request: Request, period: Literal["1d", "7d", "30d", "90d"] = Query(default="7d")) -> Envelope:
    """Activity breakdown for the period. hourlyActivity always covers the last 24 hours."""
    log_store = request.app.state.log_store
    now = datetime.now(timezone.utc)
    window = LogFilter(start=now - timedelta(days=STATS_PERIODS[period]))

    top_users = log_store.user_activity(window, top=STATS_TOP_N)
    users = request.app.state.user_store.get_by_ids(row["user_id"] for row in top_users)
    hourly = log_store.hourly_counts(LogFilter(start=now - timedelta(hours=24)))
    return Envelope(
        data={
            "actionStats": [
                {"action": r["action"], "count": r["count"], "uniqueUsers": r["unique_users"]}
                for r in log_store.action_summary(window)
            ],
            "hourlyActivity": [{"hour": hour, "count": count} for hour, count in hourly.items()],
            "topUsers": activity_rows(top_users, users, "activityCount"),
            "ipStats": [
                {"ip": r["ip"], "count": r["count"], "uniqueUsers": r["unique_users"]}
                for r in log_store.ip_summary(window, top=STATS_TOP_N)
            ],
            "period": period,
            "generatedAt": now.isoformat(),
        }
    )


@router.get("/logs/export", dependencies=[Depends(_staff)])
def export_logs(
    request: Request,
    format: Literal["json", "csv"] = Query(default="json"),
    limit: int = Query(default=EXPORT_MAX_ROWS, ge=1, le=EXPORT_MAX_ROWS),
    flt: LogFilter = Depends(_log_filter),
) -> Response:
    """Download matching entries, newest first, as an attachment."""
    logs = request.app.state.log_store.export_logs(flt, limit=limit)
    owners = _owners(request, logs)
    filename = f"activity_logs_{date.today().isoformat()}.{format}"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    request.app.state.recorder.record(
        request_context(request), "logs-export", {"format": format, "count": len(logs)}
    )

    if format == "csv":
        return Response(content=logs_to_csv(logs, owners), media_type="text/csv; charset=utf-8", headers=headers)
    return JSONResponse(
        content={
            "success": True,
            "data": {
                "logs": [log_to_dict(log, owners.get(log.user_id)) for log in logs],
                "count": len(logs),
                "exportedAt": datetime.now().astimezone().isoformat(),
            },
        },
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------


@router.delete("/logs/cleanup", response_model=Envelope)
def cleanup_logs(
    request: Request,
    days: int = Query(default=90, ge=1),
    current_user: AuthenticatedUser = Depends(_admin_only),
) -> Envelope:
    deleted, cutoff = request.app.state.log_store.delete_older_than(days)
    request.app.state.recorder.record(
        request_context(request), "logs-cleanup", {"days": days, "deletedCount": deleted, "cutoff": cutoff}
    )
    logger.info("Deleted %d activity log entries older than %s (by %s)", deleted, cutoff, current_user.id)
    return Envelope(
        message=f"Deleted {deleted} log entries older than {days} days.",
        data={"deletedCount": deleted, "cutoffDate": cutoff},
    )
