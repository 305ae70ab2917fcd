"""
API request and response models for the identity server REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names are snake_case in Python and camelCase on the wire
(alias_generator=to_camel), matching what the SPA sends:
    {"username": ..., "password": ...}  ->  {"accessToken", "refreshToken", "expiry"}
populate_by_name=True lets tests and server code build models by field name.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class LoginRequest(_CamelModel):
    """Request body for POST /api/v1/Authentication/Login."""

    username: str = Field(min_length=1, max_length=255)
    # Not stripped: whitespace is a legal password character.
    password: str = Field(min_length=1, max_length=255)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=False)


class LogoutRequest(_CamelModel):
    """Request body for POST /api/v1/Authentication/Logout."""

    refresh_token: str = Field(min_length=1, max_length=512)


class RefreshTokenRequest(_CamelModel):
    """Request body for POST /api/v1/Authentication/Refresh."""

    refresh_token: str = Field(min_length=1, max_length=512)


class TokenResponse(_CamelResponse):
    """Response for Login and Refresh.

    expiry is the access token's expiry (ISO 8601, UTC). Clients refresh
    before or at that instant.
    """

    access_token: str
    refresh_token: str
    expiry: datetime


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /api/v1/Users/Register (self-service)."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=False)


class UserCreate(RegisterRequest):
    """Request body for POST /api/v1/Users (administrator)."""

    roles: list[str] = Field(default_factory=list, max_length=20)


class UserResponse(_CamelResponse):
    """Public view of a user. Never carries the password hash or tokens."""

    id: str
    username: str
    first_name: str
    last_name: str
    roles: list[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id or "",
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            roles=sorted(user.roles),
            created_at=user.created_at or "",
        )


class RoleAssign(_CamelModel):
    """Request body for POST /api/v1/Users/{id}/Roles."""

    role: str = Field(min_length=1, max_length=256)


class PasswordChange(_CamelModel):
    """Request body for PUT /api/v1/Users/Me/Password."""

    old_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=1, max_length=255)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=False)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(_CamelModel):
    """Request body for POST /api/v1/Roles."""

    name: str = Field(min_length=1, max_length=256)


class RoleResponse(_CamelResponse):
    name: str
    created_at: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
