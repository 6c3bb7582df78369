"""
auth/validation.py -- Shape checks for account fields.

Pure functions returning lists of human-readable problems; the session manager
and the user routes decide which error to raise. Kept separate from the
Pydantic request models because the request models accept missing fields on
purpose (a missing password is MISSING_CREDENTIALS / MISSING_FIELDS with a
specific code, not a generic 422).

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import re
from typing import Optional

from core.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

NAME_MIN_LEN = 2
NAME_MAX_LEN = 255
EMAIL_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128


def is_valid_email(email: str) -> bool:
    return len(email) <= EMAIL_MAX_LEN and EMAIL_RE.match(email) is not None


def name_problems(name: str) -> list[str]:
    stripped = name.strip()
    if len(stripped) < NAME_MIN_LEN or len(stripped) > NAME_MAX_LEN:
        return [f"Name must be between {NAME_MIN_LEN} and {NAME_MAX_LEN} characters long"]
    return []


def password_problems(password: str) -> list[str]:
    """Strength rules: length, and at least one lowercase, one uppercase, one digit.

    Stops at the first failing rule, so the client gets one actionable message.
    """
    if len(password) < PASSWORD_MIN_LEN:
        return [f"Password must be at least {PASSWORD_MIN_LEN} characters long"]
    if len(password) > PASSWORD_MAX_LEN:
        return [f"Password must be at most {PASSWORD_MAX_LEN} characters long"]
    if not re.search(r"[a-z]", password):
        return ["Password must contain at least one lowercase letter"]
    if not re.search(r"[A-Z]", password):
        return ["Password must contain at least one uppercase letter"]
    if not re.search(r"\d", password):
        return ["Password must contain at least one number"]
    return []


def require_fields(**fields: Optional[str]) -> None:
    """Raise MISSING_FIELDS naming every absent or blank field."""
    missing = [name for name, value in fields.items() if value is None or not str(value).strip()]
    if missing:
        raise ValidationError(
            "Name, email, and password are required.",
            code="MISSING_FIELDS",
            extra={"missing": missing},
        )


def validate_account_fields(name: str, email: str, password: str) -> None:
    """Raise VALIDATION_ERROR with every problem found across the three fields."""
    errors = name_problems(name)
    if not is_valid_email(email.strip()):
        errors.append("Please provide a valid email address")
    errors.extend(password_problems(password))
    if errors:
        raise ValidationError("Validation failed", extra={"errors": errors})
