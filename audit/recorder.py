"""
audit/recorder.py -- Best-effort activity recording.

Every audited operation calls ActivityRecorder.record() after (or instead of)
doing its work. Recording is not transactional with the operation: a failed
insert is logged here and dropped, and the caller's request still succeeds.
The audit trail must never be the reason a login fails.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from audit.models import ActivityLog
from audit.store import ActivityLogStore
from auth.models import RequestContext

logger = logging.getLogger("adminpanel.audit")


class ActivityRecorder:
    """Builds ActivityLog entries from a RequestContext and writes them."""

    def __init__(self, store: ActivityLogStore) -> None:
        self.store = store

    def record(
        self,
        ctx: RequestContext,
        action: str,
        details: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> None:
        """Write one entry. Never raises.

        actor_id / actor_role override the ones on ctx -- login and admin
        setup know the actor only after the operation, not from the request.
        """
        user_id = actor_id or ctx.actor_id
        role = actor_role or ctx.actor_role
        payload: dict[str, Any] = {**(details or {}), "method": ctx.method, "url": ctx.url}
        if user_id:
            payload["userId"] = user_id
            payload["userRole"] = role
        entry = ActivityLog(
            action=action,
            user_id=user_id,
            ip=ctx.ip,
            user_agent=ctx.user_agent,
            details=payload,
        )
        try:
            self.store.create_log(entry)
        except Exception:
            logger.exception("Activity log write failed (action=%s user=%s ip=%s)", action, user_id, ctx.ip)
