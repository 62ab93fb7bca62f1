"""
API request and response models for UserGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model has a password or password_hash field. The only way a
user reaches a response body is through UserResponse.from_user() or
UserInfoResponse.from_info(), and neither copies the hash.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User, UserInfo


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_email(value: str) -> str:
    """Validate syntax and return the address exactly as given.

    Login matches emails case-sensitively against the stored value, so the
    normalized form email-validator computes is never stored.
    """
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError("Invalid email format") from exc
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login.

    email is a plain string on purpose: AuthService validates its syntax so
    the same rule applies to every caller, not only HTTP ones.
    """

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register and POST /users.

    email and password are stored exactly as sent: login compares both
    without normalization, so nothing here may strip or re-case them.
    """

    account_id: UUID
    branch_id: Optional[UUID] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: str = Field(max_length=255)
    password: str = Field(min_length=8, max_length=100)
    role: str = Field(min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def email_syntax(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class UserUpdate(BaseModel):
    """Request body for PUT /users/{id}. Omitted fields are left unchanged."""

    branch_id: Optional[UUID] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, min_length=8, max_length=100)
    role: Optional[str] = Field(default=None, min_length=1, max_length=50)
    status: Optional[str] = Field(default=None, min_length=1, max_length=20)

    @field_validator("email")
    @classmethod
    def email_syntax(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_email(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """A stored user as returned by the user management routes."""

    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    branch_id: Optional[str]
    name: Optional[str]
    email: str
    role: str
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=str(user.id),
            account_id=user.account_id,
            branch_id=user.branch_id,
            name=user.name,
            email=user.email,
            role=user.role,
            status=user.status,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UserInfoResponse(BaseModel):
    """The session identity view."""

    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    branch_id: Optional[str]
    name: Optional[str]
    email: str
    role: str
    status: str

    @classmethod
    def from_info(cls, info: UserInfo) -> "UserInfoResponse":
        return cls(**info.to_dict())


class MessageResponse(BaseModel):
    """Envelope for operations that return no resource."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    timestamp: str = Field(default_factory=_now_iso)


class LoginResponse(MessageResponse):
    user: UserInfoResponse


class ErrorResponse(BaseModel):
    """Envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    timestamp: str = Field(default_factory=_now_iso)


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    uptime_seconds: float
    components: dict[str, str]
