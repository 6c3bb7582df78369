"""
audit/models.py -- Domain dataclasses for the activity log.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class ActivityLog:
    """One audited action.

    user_id is None for anonymous actions (signup, failed login for an unknown
    email). details always carries the request method and url, plus userId and
    userRole when an actor is known.
    """

    action: str
    ip: str = "unknown"
    user_agent: str = "unknown"
    user_id: Optional[str] = None
    details: dict = field(default_factory=dict)
    timestamp: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class LogFilter:
    """Query filter shared by list, count and export. All fields optional."""

    user_id: Optional[str] = None
    action: Optional[str] = None
    ip: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
