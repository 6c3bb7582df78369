"""
tests/test_activity_store.py -- Unit tests for ActivityLogStore and ActivityRecorder.

Covers:
  - create/list round trip with JSON details
  - filters: user, action, ip substring (case-insensitive), time window
  - newest-first ordering and pagination
  - action_counts ordering, per-action / per-ip / per-user / per-hour aggregates
  - retention cleanup by age
  - recorder adds method/url/userId/userRole and never raises
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from audit.models import ActivityLog, LogFilter
from audit.recorder import ActivityRecorder
from audit.store import ActivityLogStore
from auth.models import RequestContext


def _ts(days_ago: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days_ago)).isoformat()


@pytest.fixture
def log_store(stores) -> ActivityLogStore:
    _user_store, store, _sessions = stores
    return store


@pytest.fixture
def seeded(log_store: ActivityLogStore) -> ActivityLogStore:
    log_store.create_log(ActivityLog(action="login-success", user_id="u-1", ip="10.0.0.1", timestamp=_ts(3)))
    log_store.create_log(ActivityLog(action="login-failed", ip="10.0.0.2", timestamp=_ts(2)))
    log_store.create_log(ActivityLog(action="login-failed", ip="192.168.1.9", timestamp=_ts(1)))
    log_store.create_log(
        ActivityLog(action="role-change", user_id="u-2", ip="10.0.0.1", details={"newRole": "manager"}, timestamp=_ts(0))
    )
    return log_store


class TestActivityLogStore:
    def test_details_round_trip(self, seeded: ActivityLogStore) -> None:
        (entry,) = seeded.list_logs(LogFilter(action="role-change"))
        assert entry.details == {"newRole": "manager"}
        assert entry.user_id == "u-2"
        assert entry.id is not None

    def test_newest_first(self, seeded: ActivityLogStore) -> None:
        actions = [log.action for log in seeded.list_logs()]
        assert actions == ["role-change", "login-failed", "login-failed", "login-success"]

    def test_pagination(self, seeded: ActivityLogStore) -> None:
        assert [log.action for log in seeded.list_logs(page=2, limit=3)] == ["login-success"]

    def test_filter_by_user_and_action(self, seeded: ActivityLogStore) -> None:
        assert seeded.count_logs(LogFilter(user_id="u-1")) == 1
        assert seeded.count_logs(LogFilter(action="login-failed")) == 2

    def test_ip_filter_is_substring(self, seeded: ActivityLogStore) -> None:
        assert seeded.count_logs(LogFilter(ip="10.0.0")) == 3
        assert seeded.count_logs(LogFilter(ip="192.168")) == 1

    def test_time_window(self, seeded: ActivityLogStore) -> None:
        now = datetime.now(timezone.utc)
        window = LogFilter(start=now - timedelta(days=2, hours=12), end=now - timedelta(hours=12))
        assert [log.action for log in seeded.list_logs(window)] == ["login-failed", "login-failed"]

    def test_naive_datetimes_are_treated_as_utc(self, seeded: ActivityLogStore) -> None:
        naive_start = (datetime.now(timezone.utc) - timedelta(hours=12)).replace(tzinfo=None)
        assert seeded.count_logs(LogFilter(start=naive_start)) == 1

    def test_action_counts(self, seeded: ActivityLogStore) -> None:
        counts = seeded.action_counts()
        assert list(counts)[0] == "login-failed"
        assert counts == {"login-failed": 2, "login-success": 1, "role-change": 1}

    def test_action_counts_uncapped(self, seeded: ActivityLogStore) -> None:
        assert len(seeded.action_counts(top=1)) == 1
        assert len(seeded.action_counts(top=None)) == 3

    def test_action_summary_counts_known_users(self, seeded: ActivityLogStore) -> None:
        assert seeded.action_summary() == [
            {"action": "login-failed", "count": 2, "unique_users": 0},
            {"action": "login-success", "count": 1, "unique_users": 1},
            {"action": "role-change", "count": 1, "unique_users": 1},
        ]

    def test_ip_summary(self, seeded: ActivityLogStore) -> None:
        busiest = seeded.ip_summary(top=1)
        assert busiest == [{"ip": "10.0.0.1", "count": 2, "unique_users": 2}]

    def test_user_activity_skips_anonymous(self, seeded: ActivityLogStore) -> None:
        rows = seeded.user_activity(most_recent_first=True)
        assert [row["user_id"] for row in rows] == ["u-2", "u-1"]
        assert all(row["count"] == 1 for row in rows)
        (login,) = seeded.user_activity(LogFilter(action="login-success"))
        assert login["user_id"] == "u-1"
        (entry,) = seeded.list_logs(LogFilter(action="login-success"))
        assert login["last_activity"] == entry.timestamp

    def test_hourly_counts(self, seeded: ActivityLogStore) -> None:
        counts = seeded.hourly_counts()
        assert sum(counts.values()) == 4
        assert all(0 <= hour <= 23 for hour in counts)

    def test_export_respects_limit(self, seeded: ActivityLogStore) -> None:
        assert len(seeded.export_logs(limit=2)) == 2

    def test_delete_older_than(self, seeded: ActivityLogStore) -> None:
        deleted, cutoff = seeded.delete_older_than(2)
        # Entries at 3 days and 2 days (plus a few ms) are older than the cutoff.
        assert deleted == 2
        assert cutoff
        assert seeded.count_logs() == 2


class TestActivityRecorder:
    ctx = RequestContext(
        ip="203.0.113.5",
        user_agent="curl/8",
        method="PATCH",
        url="/api/v1/users/u-9/role",
        actor_id="admin-1",
        actor_role="admin",
    )

    def test_record_enriches_details(self, log_store: ActivityLogStore) -> None:
        ActivityRecorder(log_store).record(self.ctx, "role-change", {"targetUserId": "u-9"})
        (entry,) = log_store.list_logs()
        assert entry.user_id == "admin-1"
        assert entry.ip == "203.0.113.5"
        assert entry.user_agent == "curl/8"
        assert entry.details == {
            "targetUserId": "u-9",
            "method": "PATCH",
            "url": "/api/v1/users/u-9/role",
            "userId": "admin-1",
            "userRole": "admin",
        }

    def test_explicit_actor_overrides_context(self, log_store: ActivityLogStore) -> None:
        ActivityRecorder(log_store).record(self.ctx, "login-success", actor_id="u-5", actor_role="user")
        (entry,) = log_store.list_logs()
        assert entry.user_id == "u-5"
        assert entry.details["userRole"] == "user"

    def test_anonymous_event_has_no_actor(self, log_store: ActivityLogStore) -> None:
        ActivityRecorder(log_store).record(RequestContext(), "login-failed")
        (entry,) = log_store.list_logs()
        assert entry.user_id is None
        assert "userId" not in entry.details
        assert entry.ip == "unknown"

    def test_store_failure_is_swallowed_and_logged(self, caplog) -> None:
        broken = MagicMock()
        broken.create_log.side_effect = RuntimeError("database is locked")
        with caplog.at_level("ERROR", logger="adminpanel.audit"):
            ActivityRecorder(broken).record(self.ctx, "logout")
        assert "Activity log write failed" in caplog.text
