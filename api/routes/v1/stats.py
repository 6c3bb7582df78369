"""
api/routes/v1/stats.py -- Dashboard statistics (admin, manager).

Routes:
  GET /api/v1/stats/users                 -- account counts by role, total, new in the last 30 days
  GET /api/v1/stats/logins?days=7         -- login successes, failures and success rate over a window
  GET /api/v1/stats/active-users?hours=24 -- users who logged in within the window
  GET /api/v1/stats/overview              -- users, activity and logins at a glance

All are guarded by the read:stats permission rather than a role list, so the
permission table in auth/rbac.py is the single place that grants them.
"""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query, Request

from api.models import Envelope
from audit.models import LogFilter
from audit.store import ActivityLogStore
from auth.models import ROLE_RANK
from auth.rbac import PermissionGate
from core.formatter import activity_rows

router = APIRouter()

_can_read_stats = PermissionGate("read:stats")

RECENT_USER_DAYS = 30
OVERVIEW_LOGIN_DAYS = 7
MOST_ACTIVE_TOP_N = 10


def _login_counts(log_store: ActivityLogStore, since: datetime) -> dict:
    # Counted per action so a busy window with many distinct actions cannot hide them.
    success = log_store.count_logs(LogFilter(action="login-success", start=since))
    failed = log_store.count_logs(LogFilter(action="login-failed", start=since))
    attempts = success + failed
    return {
        "successful": success,
        "failed": failed,
        "total": attempts,
        "successRate": round(success / attempts * 100, 2) if attempts else 0.0,
    }


@router.get("/stats/users", response_model=Envelope, dependencies=[Depends(_can_read_stats)])
def user_stats(request: Request) -> Envelope:
    store = request.app.state.user_store
    counts = store.count_by_role()
    # Every role appears, lowest privilege first, even when no one holds it.
    by_role = [
        {"role": role.value, "count": counts.get(role.value, 0)} for role in sorted(ROLE_RANK, key=ROLE_RANK.get)
    ]
    return Envelope(
        data={
            "usersByRole": by_role,
            "totalUsers": sum(counts.values()),
            "recentUsers": store.count_created_since(RECENT_USER_DAYS),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }
    )


@router.get("/stats/logins", response_model=Envelope, dependencies=[Depends(_can_read_stats)])
def login_stats(request: Request, days: int = Query(default=7, ge=1, le=365)) -> Envelope:
    log_store = request.app.state.log_store
    since = datetime.now(timezone.utc) - timedelta(days=days)
    logins = _login_counts(log_store, since)
    return Envelope(
        data={
            "period": f"{days} days",
            "successfulLogins": logins["successful"],
            "failedLogins": logins["failed"],
            "totalAttempts": logins["total"],
            "successRate": logins["successRate"],
            "topActions": log_store.action_counts(LogFilter(start=since)),
        }
    )


@router.get("/stats/active-users", response_model=Envelope, dependencies=[Depends(_can_read_stats)])
def active_users(request: Request, hours: int = Query(default=24, ge=1, le=24 * 365)) -> Envelope:
    """Users with a successful login in the last `hours`, most recent first.

    Deleted users are left out of activeUsers and mostActiveUsers but their
    entries still count in activitySummary.
    """
    log_store = request.app.state.log_store
    now = datetime.now(timezone.utc)
    since = now - timedelta(hours=hours)
    window = LogFilter(start=since)

    logins = log_store.user_activity(LogFilter(action="login-success", start=since), most_recent_first=True)
    busiest = log_store.user_activity(window, top=MOST_ACTIVE_TOP_N)
    users = request.app.state.user_store.get_by_ids([row["user_id"] for row in logins + busiest])

    active = activity_rows(logins, users, "loginCount")
    return Envelope(
        data={
            "activeUsers": active,
            "totalActiveUsers": len(active),
            "activitySummary": [
                {"action": action, "count": count}
                for action, count in log_store.action_counts(window, top=None).items()
            ],
            "mostActiveUsers": activity_rows(busiest, users, "actionCount"),
            "timeRange": {"hours": hours, "since": since.isoformat(), "until": now.isoformat()},
            "generatedAt": now.isoformat(),
        }
    )


@router.get("/stats/overview", response_model=Envelope, dependencies=[Depends(_can_read_stats)])
def overview(request: Request) -> Envelope:
    user_store = request.app.state.user_store
    log_store = request.app.state.log_store
    now = datetime.now(timezone.utc)

    counts = user_store.count_by_role()
    distribution = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return Envelope(
        data={
            "users": {
                "total": sum(counts.values()),
                "last24h": user_store.count_created_since(1),
                "last7d": user_store.count_created_since(7),
                "last30d": user_store.count_created_since(30),
            },
            "activities": {
                "total": log_store.count_logs(),
                "last24h": log_store.count_logs(LogFilter(start=now - timedelta(hours=24))),
                "last7d": log_store.count_logs(LogFilter(start=now - timedelta(days=7))),
            },
            "logins": _login_counts(log_store, now - timedelta(days=OVERVIEW_LOGIN_DAYS)),
            "roleDistribution": [{"role": role, "count": count} for role, count in distribution],
            "generatedAt": now.isoformat(),
        }
    )
