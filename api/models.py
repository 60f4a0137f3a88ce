"""
API request and response models for AuthKit REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Passwords are never whitespace-stripped: leading and trailing spaces are part
of the secret. Emails are normalized by the service, not here.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AuthUser

# bcrypt considers the first 72 bytes of a password.
_PASSWORD_MAX = 72
_EMAIL_MAX = 255
# Tokens are 64 hex chars; allow some slack so a malformed token reaches the
# service and is rejected as INVALID_TOKEN rather than a validation error.
_TOKEN_MAX = 256


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /auth/login and POST /auth/register."""

    email: str = Field(min_length=3, max_length=_EMAIL_MAX, pattern=r"^\s*[^@\s]+@[^@\s]+\s*$")
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=1, max_length=_EMAIL_MAX)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=_TOKEN_MAX)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1, max_length=_TOKEN_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user identity. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    email_verified: bool

    @classmethod
    def from_auth_user(cls, user: AuthUser) -> "UserResponse":
        return cls(id=user.id, email=user.email, email_verified=user.email_verified)


class AuthResponse(BaseModel):
    """Success envelope for every auth flow.

    warnings lists non-fatal problems (e.g. the verification email could not
    be sent) on an otherwise successful registration.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: Optional[UserResponse] = None
    warnings: list[str] = Field(default_factory=list)


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
    components: dict[str, str] = Field(default_factory=dict)
