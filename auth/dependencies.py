"""
auth/dependencies.py -- The per-request authentication gate (FastAPI Depends()).

Only one credential is accepted: an access token in
`Authorization: Bearer <token>`. The gate runs, in order:

  1. header present and starts with "Bearer "      else MISSING_AUTH_HEADER
  2. a token segment follows                       else MISSING_TOKEN
  3. token verifies against the access secret      else INVALID_TOKEN / TOKEN_EXPIRED
  4. the subject id still exists                   else USER_NOT_FOUND
  5. that user still has a stored refresh token    else SESSION_EXPIRED

Step 5 ties every access token to a live session: once a user logs out (or is
superseded and then logs out, or has a tampered refresh token revoked), all
of their unexpired access tokens stop working on the next request.

get_current_user() raises on failure; try_get_current_user() is the soft
variant for endpoints usable both anonymously and signed in. Both attach the
identity and the client IP to request.state.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from auth.models import AuthenticatedUser, RequestContext
from auth.store import UserStore
from auth.tokens import InvalidTokenError, TokenExpiredError, decode_access_token
from core.config import get_settings
from core.errors import AppError, AuthenticationError

_BEARER_PREFIX = "Bearer "


def client_ip(request: Request) -> str:
    """Resolve the caller's IP address.

    X-Forwarded-For is only consulted when TRUST_PROXY_HEADERS is on; otherwise
    any client could spoof its audit-log address with a header.
    """
    if get_settings().trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def request_context(request: Request) -> RequestContext:
    """Build the audit context for this request, including the actor if the gate ran."""
    user: Optional[AuthenticatedUser] = getattr(request.state, "user", None)
    return RequestContext(
        ip=getattr(request.state, "client_ip", None) or client_ip(request),
        user_agent=request.headers.get("User-Agent", "unknown"),
        method=request.method,
        url=str(request.url.path) + (f"?{request.url.query}" if request.url.query else ""),
        actor_id=user.id if user else None,
        actor_role=user.role if user else None,
    )


def parse_bearer(header: Optional[str]) -> str:
    """Extract the token from an Authorization header value, or raise."""
    if not header or not header.startswith(_BEARER_PREFIX):
        raise AuthenticationError("Authorization header missing or malformed.", code="MISSING_AUTH_HEADER")
    parts = header.split(" ")
    token = parts[1] if len(parts) > 1 else ""
    if not token:
        raise AuthenticationError("Token not provided.", code="MISSING_TOKEN")
    return token


def authenticate_token(store: UserStore, token: str) -> AuthenticatedUser:
    """Steps 3-5 of the gate: verify, load, and check the session flag."""
    try:
        payload = decode_access_token(token)
    except TokenExpiredError as exc:
        raise AuthenticationError("Token expired.", code="TOKEN_EXPIRED") from exc
    except InvalidTokenError as exc:
        raise AuthenticationError("Invalid token.", code="INVALID_TOKEN") from exc

    user = store.get_by_id(payload["sub"])
    if user is None:
        raise AuthenticationError("User not found or account deleted.", code="USER_NOT_FOUND")
    if user.refresh_token is None:
        raise AuthenticationError("Session expired. Please login again.", code="SESSION_EXPIRED")
    return AuthenticatedUser.from_user(user)


def get_current_user(request: Request) -> AuthenticatedUser:
    """Require authentication. Raises a 401 AppError if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: AuthenticatedUser = Depends(get_current_user)): ...
    """
    token = parse_bearer(request.headers.get("Authorization"))
    user = authenticate_token(request.app.state.user_store, token)
    request.state.user = user
    request.state.client_ip = client_ip(request)
    return user


def try_get_current_user(request: Request) -> Optional[AuthenticatedUser]:
    """Soft variant: same checks, but any failure means anonymous (None). Never raises AppError."""
    try:
        return get_current_user(request)
    except AppError:
        return None
