"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  GET    /api/v1/users/profile          -- own profile with timestamps (any role)
  PUT    /api/v1/users/profile          -- change own name / email (any role)
  GET    /api/v1/users                  -- paginated list, role/search filters (admin, manager)
  GET    /api/v1/users/{user_id}        -- one user (admin, manager, or the owner)
  POST   /api/v1/users                  -- create an account with any role (admin)
  PATCH  /api/v1/users/{user_id}/role   -- change a role, never your own (admin)
  DELETE /api/v1/users/{user_id}        -- delete an account, never your own (admin)

Every mutation records an activity log entry. A role change reaches the
affected user's live session on their next request, because the
authentication gate reloads the account from the store each time.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import Envelope, Pagination, ProfileUpdate, PublicUser, RoleChange, UserCreate
from auth.dependencies import get_current_user, request_context
from auth.models import AuthenticatedUser, Role, User
from auth.rbac import ResourceOwnerGate, require_roles
from auth.store import UserStore, normalize_email
from auth.tokens import hash_password
from auth.validation import is_valid_email, name_problems, require_fields, validate_account_fields
from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("adminpanel.api")

router = APIRouter()

_staff = require_roles(Role.admin, Role.manager)
_admin_only = require_roles(Role.admin)
_owner_or_staff = ResourceOwnerGate(path_param="user_id")


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _user_json(user: User) -> dict:
    return PublicUser.from_user(user).model_dump(by_alias=True)


def _load(store: UserStore, user_id: str) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.", code="USER_NOT_FOUND")
    return user


def _apply_profile_update(store: UserStore, user: User, body: ProfileUpdate) -> tuple[User, list[str]]:
    """Validate and write name / email changes. Returns the reloaded user and the changed field names."""
    changes: dict[str, str] = {}
    errors: list[str] = []
    if body.name is not None and body.name != user.name:
        errors.extend(name_problems(body.name))
        changes["name"] = body.name
    if body.email is not None and normalize_email(body.email) != user.email:
        if not is_valid_email(body.email):
            errors.append("Please provide a valid email address")
        changes["email"] = body.email
    if errors:
        raise ValidationError("Validation failed", extra={"errors": errors})
    if not changes:
        return user, []

    if "email" in changes and store.get_by_email(changes["email"]) is not None:
        raise ConflictError("Email already exists.", code="DUPLICATE_EMAIL")
    try:
        store.update_user(user.id, **changes)
    except IntegrityError as exc:
        raise ConflictError("Email already exists.", code="DUPLICATE_EMAIL") from exc
    return _load(store, user.id), sorted(changes)


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------


@router.get("/users/profile", response_model=Envelope)
def get_profile(request: Request, current_user: AuthenticatedUser = Depends(get_current_user)) -> Envelope:
    user = _load(_store(request), current_user.id)
    return Envelope(data={"user": _user_json(user)})


@router.put("/users/profile", response_model=Envelope)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope:
    store = _store(request)
    user, changed = _apply_profile_update(store, _load(store, current_user.id), body)
    if changed:
        request.app.state.recorder.record(request_context(request), "profile-update", {"fields": changed})
    return Envelope(message="Profile updated successfully.", data={"user": _user_json(user)})


# ---------------------------------------------------------------------------
# Directory (admin, manager)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=Envelope, dependencies=[Depends(_staff)])
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    role: Optional[Role] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=255),
) -> Envelope:
    """One page of users, newest first, plus the role distribution across all users."""
    store = _store(request)
    role_value = role.value if role else None
    users = store.list_users(page=page, limit=limit, role=role_value, search=search)
    total = store.count_users(role=role_value, search=search)
    return Envelope(
        data={
            "users": [_user_json(u) for u in users],
            "pagination": Pagination.build(page, limit, total).model_dump(),
            "roleDistribution": store.count_by_role(),
        }
    )


@router.get("/users/{user_id}", response_model=Envelope, dependencies=[Depends(_owner_or_staff)])
def get_user(request: Request, user_id: str) -> Envelope:
    return Envelope(data={"user": _user_json(_load(_store(request), user_id))})


# ---------------------------------------------------------------------------
# Administration (admin only)
# ---------------------------------------------------------------------------


@router.post("/users", response_model=Envelope, status_code=201, dependencies=[Depends(_admin_only)])
def create_user(request: Request, body: UserCreate) -> Envelope:
    """Create an account with any role. The new user must log in to get a session."""
    require_fields(name=body.name, email=body.email, password=body.password)
    validate_account_fields(body.name, body.email, body.password)
    store = _store(request)
    if store.get_by_email(body.email) is not None:
        raise ConflictError("Email already exists.", code="DUPLICATE_EMAIL")
    try:
        user_id = store.create_user(
            User(
                name=body.name,
                email=body.email,
                password_hash=hash_password(body.password),
                role=body.role.value,
            )
        )
    except IntegrityError as exc:
        raise ConflictError("Email already exists.", code="DUPLICATE_EMAIL") from exc
    user = _load(store, user_id)
    request.app.state.recorder.record(
        request_context(request),
        "user-create",
        {"targetUserId": user.id, "email": user.email, "role": user.role},
    )
    logger.info("User %s created with role %s", user.id, user.role)
    return Envelope(message="User created successfully.", data={"user": _user_json(user)})


@router.patch("/users/{user_id}/role", response_model=Envelope)
def change_role(
    request: Request,
    user_id: str,
    body: RoleChange,
    current_user: AuthenticatedUser = Depends(_admin_only),
) -> Envelope:
    if user_id == current_user.id:
        raise AuthorizationError("You cannot change your own role.", code="SELF_ROLE_CHANGE")
    store = _store(request)
    target = _load(store, user_id)
    previous = target.role
    if previous != body.role.value:
        store.update_user(user_id, role=body.role.value)
        target = _load(store, user_id)
        request.app.state.recorder.record(
            request_context(request),
            "role-change",
            {"targetUserId": user_id, "previousRole": previous, "newRole": target.role},
        )
        logger.info("Role of %s changed from %s to %s by %s", user_id, previous, target.role, current_user.id)
    return Envelope(message="User role updated successfully.", data={"user": _user_json(target)})


@router.delete("/users/{user_id}", response_model=Envelope)
def delete_user(
    request: Request,
    user_id: str,
    current_user: AuthenticatedUser = Depends(_admin_only),
) -> Envelope:
    """Delete an account. Its access tokens fail the gate with USER_NOT_FOUND from then on."""
    if user_id == current_user.id:
        raise AuthorizationError("You cannot delete your own account.", code="SELF_DELETE")
    store = _store(request)
    target = _load(store, user_id)
    store.delete_user(user_id)
    request.app.state.recorder.record(
        request_context(request),
        "user-delete",
        {"targetUserId": user_id, "email": target.email, "role": target.role},
    )
    logger.info("User %s deleted by %s", user_id, current_user.id)
    return Envelope(message="User deleted successfully.")
