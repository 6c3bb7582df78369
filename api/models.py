"""
API request and response models for the admin panel REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
audit/models.py, which own the internal domain representation. Route handlers
map between the two.

JSON field names are camelCase (refreshToken, accessToken, createdAt) to match
what the dashboard front end sends and expects; Python attribute names stay
snake_case through Field(alias=...).

Auth request models declare every field Optional on purpose: an absent
password must surface as MISSING_CREDENTIALS / MISSING_FIELDS from the session
manager, not as a generic schema error.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Role

# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup and POST /auth/admin-setup."""

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)


class LoginRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)


class RefreshTokenRequest(BaseModel):
    """Request body for POST /auth/refresh-token and POST /auth/logout."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken", max_length=4096)


# ---------------------------------------------------------------------------
# Users -- request models
# ---------------------------------------------------------------------------


class ProfileUpdate(BaseModel):
    """Request body for PUT /users/profile. Role is not editable here."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)


class UserCreate(BaseModel):
    """Request body for POST /users (admin only)."""

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)
    role: Role = Role.user


class RoleChange(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PublicUser(BaseModel):
    """A user as clients see it. Never carries the password hash or refresh token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    email: str
    role: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    @classmethod
    def from_user(cls, user: Any) -> "PublicUser":
        """Build from auth.models.User or AuthenticatedUser."""
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=getattr(user, "created_at", None),
            updated_at=getattr(user, "updated_at", None),
        )


class Envelope(BaseModel):
    """Success envelope shared by every JSON endpoint: {success, message?, data?}."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error envelope. Extra keys (errors, required, current, missing) may follow code."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: str
    code: str


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    currentPage: int
    totalPages: int
    total: int
    hasNext: bool
    hasPrev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if total else 0
        return cls(
            currentPage=page,
            totalPages=total_pages,
            total=total,
            hasNext=page < total_pages,
            hasPrev=page > 1,
        )


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
