"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
session manager do the work; these only own shape.

Layer rule: no imports from api/, core/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class Role(str, Enum):
    user = "user"
    manager = "manager"
    admin = "admin"


# Display ordering only. Gates never compare ranks -- each endpoint lists the
# roles it accepts explicitly.
ROLE_RANK: Mapping[Role, int] = MappingProxyType({Role.user: 1, Role.manager: 2, Role.admin: 3})


@dataclass
class User:
    """An account as persisted by UserStore.

    email is always stored lower-cased. refresh_token is the single active
    session: None means logged out (or never logged in), and any access token
    still in flight for this user is rejected by the authentication gate.
    """

    name: str
    email: str
    password_hash: str
    role: str = Role.user.value
    id: Optional[str] = None
    refresh_token: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def public_profile(self) -> dict:
        """The subset safe to return to clients."""
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity attached to a request by the authentication gate.

    Carries no password hash and no refresh token value. The gate only builds
    one for a user whose session is live.
    """

    id: str
    name: str
    email: str
    role: str
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "AuthenticatedUser":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=user.created_at,
        )

    def public_profile(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class RequestContext:
    """Who is calling and from where -- the audit trail needs this on every event."""

    ip: str = "unknown"
    user_agent: str = "unknown"
    method: str = ""
    url: str = ""
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
