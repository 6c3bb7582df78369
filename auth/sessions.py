"""
auth/sessions.py -- Signup, login, refresh, logout and first-admin setup.

The session manager is the only code that writes users.refresh_token. Its
rules:

  * One session per account. login() and setup_admin() overwrite the stored
    refresh token unconditionally, so a second login silently ends the first
    session (last write wins; concurrent logins race at the store and no
    compare-and-swap is attempted).
  * A refresh token is honoured only while it is the stored value AND it
    verifies. The store lookup runs first, so a superseded or logged-out token
    is rejected before any crypto. A stored token that then fails
    verification (expired, tampered) is cleared on the spot.
  * refresh() never rotates the refresh token; it only mints access tokens.
  * logout() clears the stored token. Access tokens already issued stay
    cryptographically valid until they expire, but the authentication gate
    rejects them because the session flag is gone.

Every operation records an audit event through ActivityRecorder (best-effort)
and raises a typed core.errors.AppError on failure.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from audit.recorder import ActivityRecorder
from auth.models import RequestContext, Role, TokenPair, User
from auth.store import UserStore, normalize_email
from auth.tokens import (
    InvalidTokenError,
    authenticate_user,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
)
from auth.validation import require_fields, validate_account_fields
from core.errors import AuthenticationError, AuthorizationError, ConflictError, InternalError, ValidationError

logger = logging.getLogger("adminpanel.auth")

# Same message for unknown email and wrong password -- no enumeration leak.
_INVALID_CREDENTIALS = "Invalid email or password."


@dataclass(frozen=True)
class IssuedSession:
    user: User
    tokens: TokenPair


class SessionManager:
    """Orchestrates the credential store, password hashing and token service."""

    def __init__(self, store: UserStore, recorder: ActivityRecorder) -> None:
        self.store = store
        self.recorder = recorder

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_account(self, name: str, email: str, password: str, role: Role) -> User:
        if self.store.get_by_email(email) is not None:
            raise ConflictError("Email already exists.", code="DUPLICATE_EMAIL")
        user = User(
            name=name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=role.value,
        )
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            # A concurrent signup for the same address won the UNIQUE race.
            raise ConflictError("Email already exists.", code="DUPLICATE_EMAIL") from exc
        created = self.store.get_by_id(user.id)
        if created is None:
            raise InternalError("User not found after write.")
        return created

    def _start_session(self, user: User) -> TokenPair:
        """Issue a token pair and make its refresh token the account's only session."""
        tokens = TokenPair(
            access_token=create_access_token(user.id, user.role),
            refresh_token=create_refresh_token(user.id),
        )
        if not self.store.set_refresh_token(user.id, tokens.refresh_token):
            raise InternalError("User not found while storing session.")
        user.refresh_token = tokens.refresh_token
        return tokens

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def signup(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        ctx: RequestContext,
    ) -> User:
        """Register a `user`-role account. Returns the stored user; no tokens are issued."""
        require_fields(name=name, email=email, password=password)
        validate_account_fields(name, email, password)
        user = self._create_account(name, email, password, Role.user)
        self.recorder.record(ctx, "signup", {"email": user.email}, actor_id=user.id, actor_role=user.role)
        logger.info("New account registered: %s", user.id)
        return user

    def login(self, email: Optional[str], password: Optional[str], ctx: RequestContext) -> IssuedSession:
        if not email or not password:
            self.recorder.record(
                ctx, "login-failed", {"email": email, "outcome": "failure", "reason": "missing-credentials"}
            )
            raise ValidationError("Email and password are required.", code="MISSING_CREDENTIALS")

        user = authenticate_user(self.store, email, password)
        if user is None:
            self.recorder.record(
                ctx,
                "login-failed",
                {"email": normalize_email(email), "outcome": "failure", "reason": "invalid-credentials"},
            )
            logger.info("Failed login from %s", ctx.ip)
            raise AuthenticationError(_INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")

        tokens = self._start_session(user)
        self.recorder.record(
            ctx,
            "login-success",
            {"email": user.email, "outcome": "success"},
            actor_id=user.id,
            actor_role=user.role,
        )
        return IssuedSession(user=user, tokens=tokens)

    def refresh(self, refresh_token: Optional[str], ctx: RequestContext) -> str:
        """Exchange a live refresh token for a new access token."""
        if not refresh_token:
            raise AuthenticationError("Refresh token required.", code="MISSING_TOKEN")

        user = self.store.get_by_refresh_token(refresh_token)
        if user is None:
            raise AuthorizationError("Invalid refresh token.", code="INVALID_TOKEN")

        try:
            payload = decode_refresh_token(refresh_token)
            if payload["sub"] != str(user.id):
                raise InvalidTokenError("Token subject does not match its owner.")
        except InvalidTokenError as exc:
            self.store.clear_refresh_token(user.id, expected=refresh_token)
            logger.warning("Revoked stored refresh token for %s after failed verification: %s", user.id, exc)
            self.recorder.record(
                ctx, "token-refresh-failed", {"reason": str(exc)}, actor_id=user.id, actor_role=user.role
            )
            raise AuthorizationError("Invalid or expired refresh token.", code="INVALID_OR_EXPIRED_TOKEN") from exc

        access_token = create_access_token(user.id, user.role)
        self.recorder.record(ctx, "token-refresh", actor_id=user.id, actor_role=user.role)
        return access_token

    def logout(self, refresh_token: Optional[str], ctx: RequestContext) -> None:
        if not refresh_token:
            raise ValidationError("Refresh token is required for logout.", code="MISSING_TOKEN")

        user = self.store.get_by_refresh_token(refresh_token)
        # The conditional clear also fails if a newer login replaced the token
        # between the lookup and the write; that token is no longer ours to end.
        if user is None or not self.store.clear_refresh_token(user.id, expected=refresh_token):
            raise AuthenticationError(
                "Invalid refresh token. User already logged out or token expired.",
                code="INVALID_TOKEN",
            )
        self.recorder.record(ctx, "logout", actor_id=user.id, actor_role=user.role)

    def admin_setup_status(self) -> dict:
        count = self.store.count_admins()
        return {"adminExists": count > 0, "adminCount": count, "setupRequired": count == 0}

    def setup_admin(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        ctx: RequestContext,
    ) -> IssuedSession:
        """Create the first administrator and log them in.

        Only allowed while no admin exists. Two concurrent calls can both pass
        the check; see DESIGN.md.
        """
        if self.store.has_admin():
            raise AuthorizationError("Admin user already exists. Use the login endpoint.", code="ADMIN_EXISTS")
        require_fields(name=name, email=email, password=password)
        validate_account_fields(name, email, password)
        user = self._create_account(name, email, password, Role.admin)
        tokens = self._start_session(user)
        self.recorder.record(ctx, "admin-setup", {"email": user.email}, actor_id=user.id, actor_role=user.role)
        logger.info("First administrator created: %s", user.id)
        return IssuedSession(user=user, tokens=tokens)
