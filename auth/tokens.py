"""
auth/tokens.py -- Password hashing and JWT issue/verification.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, two secrets:
       access  -- {sub, role, type="access"}, short-lived, never persisted.
       refresh -- {sub, type="refresh", jti}, long-lived, persisted on the
                  user record and only honoured while it still matches.
       The secrets are distinct and every token carries a "type" claim, so a
       refresh token can never pass as an access token or the other way round.
       Verification raises typed errors (InvalidTokenError / TokenExpiredError)
       so the gate can report which one happened; both end in a 401.

  Passwords: bcrypt directly (no passlib wrapper). Cost factor comes from
       Settings.bcrypt_rounds. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  Subject ids are always serialized with str() so a token issued for an id
  compares equal to the id loaded back from the store regardless of how the
  caller represented it.

Layer rule: no imports from api/ or audit/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("adminpanel.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"


class InvalidTokenError(Exception):
    """Token is malformed, has a bad signature, or is the wrong token class."""


class TokenExpiredError(InvalidTokenError):
    """Token verified cryptographically but its exp claim has passed."""


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: Optional[int] = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API layer caps passwords at
    128 characters, and longer inputs are truncated here rather than rejected
    by bcrypt 4.x.
    """
    cost = rounds if rounds is not None else _settings.bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones [C1].
_DUMMY_HASH: str = hash_password("adminpanel_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(claims: dict[str, Any], secret: str, lifetime: timedelta, issued_at: Optional[datetime]) -> str:
    now = issued_at or datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def create_access_token(user_id: Any, role: str, issued_at: Optional[datetime] = None) -> str:
    """Sign a short-lived access token asserting {id, role}.

    issued_at defaults to now; tests pass an earlier instant to simulate the
    clock moving past expiry.
    """
    return _encode(
        {"sub": str(user_id), "role": role, "type": ACCESS},
        _settings.access_token_secret,
        timedelta(minutes=_settings.access_token_expire_minutes),
        issued_at,
    )


def create_refresh_token(user_id: Any, issued_at: Optional[datetime] = None) -> str:
    """Sign a long-lived refresh token asserting {id}.

    jti makes every refresh token unique, even two issued in the same second
    for the same user -- otherwise a re-login could reproduce the previous
    token byte-for-byte and resurrect a superseded session.
    """
    return _encode(
        {"sub": str(user_id), "type": REFRESH, "jti": secrets.token_hex(8)},
        _settings.refresh_token_secret,
        timedelta(days=_settings.refresh_token_expire_days),
        issued_at,
    )


def verify_token(token: str, secret: str, expected_type: str) -> dict[str, Any]:
    """Verify signature, expiry and token class; return the payload.

    Raises TokenExpiredError when only the expiry check fails, InvalidTokenError
    for everything else (bad signature, garbage input, missing sub, wrong type).
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Token expired.") from exc
    except JWTError as exc:
        raise InvalidTokenError("Invalid token.") from exc
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise InvalidTokenError("Invalid token.")
    return payload


def decode_access_token(token: str) -> dict[str, Any]:
    return verify_token(token, _settings.access_token_secret, ACCESS)


def decode_refresh_token(token: str) -> dict[str, Any]:
    return verify_token(token, _settings.refresh_token_secret, REFRESH)


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email is registered:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
