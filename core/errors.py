"""
core/errors.py -- Typed application errors mapped to HTTP responses.

Every failure the session manager and the request gates can produce is one of
these classes. Each class carries a default HTTP status; each raise site
supplies a machine-readable code. api/main.py registers a single exception
handler that turns any AppError into the response envelope:

    {"success": false, "message": ..., "code": ..., **extra}

Status codes are fixed per class. Where two endpoints answer the same problem
with different statuses (an unknown refresh token is 403 on /refresh-token but
401 on /logout) each raise site picks the class that carries its status.

Layer rule: no imports from api/, auth/, or audit/.
"""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that cross the HTTP boundary."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, "code": self.code, **self.extra}


class ValidationError(AppError):
    """Malformed or missing input (400)."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    """Missing, invalid or expired credentials or tokens (401)."""

    status_code = 401
    code = "UNAUTHENTICATED"


class AuthorizationError(AppError):
    """Authenticated but not allowed (403)."""

    status_code = 403
    code = "FORBIDDEN"


class ConflictError(AppError):
    """Duplicate unique value, e.g. an email already registered (400)."""

    status_code = 400
    code = "CONFLICT"


class NotFoundError(AppError):
    """Referenced record does not exist (404)."""

    status_code = 404
    code = "NOT_FOUND"


class InternalError(AppError):
    """Unexpected store or crypto failure (500)."""

    status_code = 500
    code = "INTERNAL_ERROR"
