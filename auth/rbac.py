"""
auth/rbac.py -- Role-based authorization gates.

Gates are small callable objects used as FastAPI dependencies. Each one is
constructed with exactly the policy it enforces -- the allowed role set, the
path parameter naming the owner, or a permission table -- so there is no
process-wide role table a route could silently depend on.

    @router.get("/logs", dependencies=[Depends(require_roles(Role.admin, Role.manager))])

Enforcement is flat set membership. Role.admin does not implicitly satisfy a
gate that only lists Role.manager; every endpoint names every role it accepts.

Each gate runs after the authentication gate (it depends on get_current_user)
and its check() method also rejects a missing identity with UNAUTHENTICATED,
so it is safe to call with the result of try_get_current_user().

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union

from fastapi import Depends, Request

from auth.dependencies import get_current_user
from auth.models import AuthenticatedUser, Role
from core.errors import AuthenticationError, AuthorizationError

RoleLike = Union[Role, str]

# Permission table as shipped with the admin panel. Immutable; pass a
# different mapping to PermissionGate to change policy.
DEFAULT_PERMISSIONS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        Role.user.value: frozenset({"read:own_profile", "update:own_profile"}),
        Role.manager.value: frozenset(
            {
                "read:own_profile",
                "update:own_profile",
                "read:users",
                "read:stats",
                "read:logs",
                "update:users",
                "export:logs",
            }
        ),
        Role.admin.value: frozenset(
            {
                "read:own_profile",
                "update:own_profile",
                "read:users",
                "read:stats",
                "read:logs",
                "update:users",
                "delete:users",
                "create:users",
                "change:roles",
                "export:logs",
            }
        ),
    }
)


def _require_identity(user: Optional[AuthenticatedUser]) -> AuthenticatedUser:
    if user is None:
        raise AuthenticationError("Authentication required.", code="UNAUTHENTICATED")
    return user


class RoleGate:
    """Allow only callers whose role is in `allowed`."""

    def __init__(self, allowed: Iterable[RoleLike]) -> None:
        self.allowed: frozenset[str] = frozenset(Role(r).value for r in allowed)
        if not self.allowed:
            raise ValueError("RoleGate needs at least one allowed role")

    def check(self, user: Optional[AuthenticatedUser]) -> AuthenticatedUser:
        user = _require_identity(user)
        if user.role not in self.allowed:
            raise AuthorizationError(
                "Access denied. Insufficient permissions.",
                extra={"required": sorted(self.allowed), "current": user.role},
            )
        return user

    def __call__(self, user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        return self.check(user)


def require_roles(*roles: RoleLike) -> RoleGate:
    return RoleGate(roles)


class ResourceOwnerGate:
    """Admins and managers pass; a `user` passes only for their own resource.

    The resource owner's id is read from the path parameter `path_param`.
    """

    def __init__(self, path_param: str = "user_id") -> None:
        self.path_param = path_param

    def check(self, user: Optional[AuthenticatedUser], resource_user_id: Optional[str]) -> AuthenticatedUser:
        user = _require_identity(user)
        if user.role in (Role.admin.value, Role.manager.value):
            return user
        if user.role == Role.user.value and resource_user_id is not None and user.id == str(resource_user_id):
            return user
        raise AuthorizationError(
            "Access denied. You can only access your own resources.",
            extra={"current": user.role},
        )

    def __call__(self, request: Request, user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        return self.check(user, request.path_params.get(self.path_param))


class PermissionGate:
    """Allow only callers whose role grants `permission` under `policy`."""

    def __init__(self, permission: str, policy: Mapping[str, frozenset[str]] = DEFAULT_PERMISSIONS) -> None:
        self.permission = permission
        self.policy = MappingProxyType(dict(policy))

    def check(self, user: Optional[AuthenticatedUser]) -> AuthenticatedUser:
        user = _require_identity(user)
        if self.permission not in self.policy.get(user.role, frozenset()):
            raise AuthorizationError(
                "Access denied. Insufficient permissions.",
                extra={"required": self.permission, "current": user.role},
            )
        return user

    def __call__(self, user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        return self.check(user)
