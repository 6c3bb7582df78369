"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup              -- register a `user`-role account; 201
  POST /api/v1/auth/login               -- issue access + refresh tokens
  POST /api/v1/auth/refresh-token       -- new access token from a live refresh token
  POST /api/v1/auth/logout              -- end the session (clears the stored refresh token)
  GET  /api/v1/auth/admin-setup/status  -- does an admin exist yet?
  POST /api/v1/auth/admin-setup         -- create + log in the first admin; 201
  GET  /api/v1/auth/me                  -- current user (requires auth)
  GET  /api/v1/auth/session             -- current user or anonymous (optional auth)

Request bodies are optional. A request with no body at all reaches the session
manager as an empty model, so it fails with MISSING_CREDENTIALS, MISSING_TOKEN
or MISSING_FIELDS rather than a schema error.

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  [C1] SessionManager.login() uses authenticate_user(), which runs bcrypt even
       for unknown emails. Unknown email and wrong password return the same
       status, code and message.
  [M5] Cache-Control: no-store on every response that carries a token.

All business rules live in auth/sessions.py. Handlers only translate between
HTTP and the session manager; failures propagate as AppError and are rendered
by the handler in api/main.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import Envelope, LoginRequest, RefreshTokenRequest, SignupRequest
from auth.dependencies import get_current_user, request_context, try_get_current_user
from auth.models import AuthenticatedUser
from auth.sessions import IssuedSession, SessionManager
from core.config import get_settings

# Auth policy:
# - POST /auth/signup, /auth/login, /auth/admin-setup, GET /auth/admin-setup/status: public
# - POST /auth/refresh-token, /auth/logout: keyed by the refresh token in the body
# - GET  /auth/me: requires auth (get_current_user)
# - GET  /auth/session: optional auth (try_get_current_user)
router = APIRouter()


def _sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def _session_payload(issued: IssuedSession) -> dict:
    return {
        "accessToken": issued.tokens.access_token,
        "refreshToken": issued.tokens.refresh_token,
        "user": issued.user.public_profile(),
    }


# ---------------------------------------------------------------------------
# Credential issuance
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=Envelope, status_code=201)
def signup(request: Request, body: Optional[SignupRequest] = None) -> Envelope:
    """Register a new account with role `user`. Returns the public profile, never tokens."""
    body = body or SignupRequest()
    user = _sessions(request).signup(body.name, body.email, body.password, request_context(request))
    return Envelope(message="User registered successfully.", data={"user": user.public_profile()})


@limiter.limit(get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=Envelope)
def login(request: Request, response: Response, body: Optional[LoginRequest] = None) -> Envelope:
    """Authenticate with email and password; returns both tokens and the public profile.

    A successful login replaces any refresh token the account already had --
    the previous session (on any device) can no longer refresh.
    """
    body = body or LoginRequest()
    issued = _sessions(request).login(body.email, body.password, request_context(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return Envelope(message="Login successful.", data=_session_payload(issued))


@router.post("/auth/refresh-token", response_model=Envelope)
def refresh_token(request: Request, response: Response, body: Optional[RefreshTokenRequest] = None) -> Envelope:
    """Exchange the stored refresh token for a new access token. The refresh token is not rotated."""
    body = body or RefreshTokenRequest()
    access_token = _sessions(request).refresh(body.refresh_token, request_context(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return Envelope(message="Access token refreshed.", data={"accessToken": access_token})


@router.post("/auth/logout", response_model=Envelope)
def logout(request: Request, body: Optional[RefreshTokenRequest] = None) -> Envelope:
    body = body or RefreshTokenRequest()
    _sessions(request).logout(body.refresh_token, request_context(request))
    return Envelope(message="Logout successful. You have been securely logged out.")


# ---------------------------------------------------------------------------
# First administrator
# ---------------------------------------------------------------------------


@router.get("/auth/admin-setup/status", response_model=Envelope)
def admin_setup_status(request: Request) -> Envelope:
    return Envelope(data=_sessions(request).admin_setup_status())


@router.post("/auth/admin-setup", response_model=Envelope, status_code=201)
def admin_setup(request: Request, response: Response, body: Optional[SignupRequest] = None) -> Envelope:
    """Create the first admin and log them in. 403 ADMIN_EXISTS once any admin exists."""
    body = body or SignupRequest()
    issued = _sessions(request).setup_admin(body.name, body.email, body.password, request_context(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return Envelope(message="Admin user created successfully.", data=_session_payload(issued))


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=Envelope)
def me(current_user: AuthenticatedUser = Depends(get_current_user)) -> Envelope:
    """Return identity information for the currently authenticated user."""
    return Envelope(data={"user": current_user.public_profile()})


@router.get("/auth/session", response_model=Envelope)
def session_info(current_user: Optional[AuthenticatedUser] = Depends(try_get_current_user)) -> Envelope:
    """Report whether the caller is signed in. Never fails on a bad or missing token."""
    if current_user is None:
        return Envelope(data={"authenticated": False, "user": None})
    return Envelope(data={"authenticated": True, "user": current_user.public_profile()})
