"""
formatter.py -- Renders activity log entries for export (CSV, JSON) and statistics.

Duck-typed on purpose: anything with the ActivityLog attributes renders, so
this module stays in core/ without importing audit/.

Security:
  CSV cells are neutralized against spreadsheet formula injection (CWE-1236).
  IP addresses, user agents and emails in the log are attacker-controlled; a
  cell that starts with =, +, - or @ would be evaluated as a formula by Excel
  or LibreOffice when an admin opens the export.
"""

import csv
import io
import json
from typing import Any, Iterable, Mapping, Optional

# Characters that make a spreadsheet treat a cell as a formula.
_CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")

CSV_HEADERS = [
    "timestamp",
    "action",
    "user_id",
    "user_name",
    "user_email",
    "ip",
    "user_agent",
    "details",
]


def _sanitize_csv_cell(value: Any) -> str:
    """Prefix a tab to any cell that starts with a formula character.

    Spreadsheets read a cell that begins with whitespace as text, so the
    formula is shown, not run. Empty and None values become "".
    """
    if value is None:
        return ""
    text = str(value)
    if text.startswith(_CSV_DANGEROUS_PREFIXES):
        return "\t" + text
    return text


def log_to_dict(log: Any, user: Optional[Mapping[str, Any]] = None) -> dict:
    """JSON shape of one log entry. `user` is the looked-up public profile, if any."""
    return {
        "id": log.id,
        "action": log.action,
        "timestamp": log.timestamp,
        "userId": log.user_id,
        "user": dict(user) if user else None,
        "ip": log.ip,
        "userAgent": log.user_agent,
        "details": log.details,
    }


def logs_to_csv(logs: Iterable[Any], users: Optional[Mapping[str, Mapping[str, Any]]] = None) -> str:
    """Render log entries as CSV, one row per entry, header first.

    users maps user_id -> public profile and fills the name/email columns.
    details is written as compact JSON.
    """
    users = users or {}
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)
    for log in logs:
        owner = users.get(log.user_id) if log.user_id else None
        row = [
            log.timestamp,
            log.action,
            log.user_id,
            owner.get("name") if owner else None,
            owner.get("email") if owner else None,
            log.ip,
            log.user_agent,
            json.dumps(log.details, separators=(",", ":"), default=str) if log.details else "",
        ]
        writer.writerow([_sanitize_csv_cell(cell) for cell in row])
    return buf.getvalue()


def activity_rows(activity: Iterable[Mapping[str, Any]], users: Mapping[str, Any], count_key: str) -> list[dict]:
    """Join per-user activity aggregates with profiles for the statistics endpoints.

    Rows for users that no longer exist are dropped.
    """
    rows = []
    for item in activity:
        user = users.get(item["user_id"])
        if user is None:
            continue
        rows.append(
            {
                "userId": item["user_id"],
                "name": user.name,
                "email": user.email,
                "role": user.role,
                count_key: item["count"],
                "lastActivity": item["last_activity"],
            }
        )
    return rows
