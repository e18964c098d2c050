"""
API request and response models for PushGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model has a password_hash field. Digests never leave the process
through the API; application tokens are returned only to their owner.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Application, User

# ---------------------------------------------------------------------------
# Errors / health
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

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


class TokenRequest(BaseModel):
    """Password grant: exchange a name/password pair for a bearer token.

    No whitespace stripping here -- spaces are significant in passwords.
    """

    grant_type: Literal["password"] = "password"
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin only)."""

    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    matrix_id: str = Field(default="", max_length=255)
    is_admin: bool = False


class PasswordChange(BaseModel):
    """Request body for PUT /api/v1/users/me/password."""

    password: str = Field(min_length=1, max_length=255)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    is_admin: bool
    matrix_id: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, is_admin=user.is_admin, matrix_id=user.matrix_id)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class ApplicationCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    colored_title: Optional[bool] = None


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    token: str
    colored_title: Optional[bool] = None

    @classmethod
    def from_application(cls, app: Application) -> "ApplicationResponse":
        return cls(id=app.id, name=app.name, token=app.token, colored_title=app.colored_title)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessageCreate(BaseModel):
    """Request body for POST /api/v1/message."""

    title: str = Field(default="", max_length=255)
    message: str = Field(min_length=1, max_length=65536)
    priority: int = Field(default=0, ge=0, le=20)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    application_id: int
    title: str
    message: str
    priority: int
    id: Optional[str] = None
