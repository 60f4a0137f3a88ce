"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
service do the work; these types only own domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


def normalize_email(email: str) -> str:
    """Canonical form used for every email lookup and insert."""
    return email.strip().lower()


class TokenKind(str, Enum):
    """Selects the token table for the generic store operations."""

    verification = "verification"
    password_reset = "password_reset"


class AuthErrorCode(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED = "EXPIRED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class User:
    """An identity record owned by the credential store.

    email is always stored normalized (see normalize_email). password_hash is
    the opaque bcrypt digest; the plaintext never leaves the hasher.
    """

    email: str
    password_hash: str
    id: str | None = None
    email_verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class VerificationToken:
    """Proof that a registration email was sent. Deleted when consumed."""

    user_id: str
    token: str
    expires_at: str  # ISO 8601 UTC
    id: str | None = None
    created_at: str | None = None


@dataclass
class PasswordResetToken:
    """Proof of a password-reset request. Flagged used when consumed, never reused."""

    user_id: str
    token: str
    expires_at: str  # ISO 8601 UTC
    used: bool = False
    id: str | None = None
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Flow results
# ---------------------------------------------------------------------------


@dataclass
class AuthUser:
    """Public view of a user returned by the flows. Never carries the hash."""

    id: str
    email: str
    email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> AuthUser:
        return cls(id=user.id, email=user.email, email_verified=user.email_verified)


@dataclass
class AuthError:
    code: AuthErrorCode
    message: str


@dataclass
class AuthResult:
    """Uniform outcome of every AuthService flow.

    warnings holds non-fatal problems on an otherwise successful path (for
    example a verification email that could not be delivered). A result with
    success=True and a non-empty warnings list is degraded, not failed.
    """

    success: bool
    user: AuthUser | None = None
    error: AuthError | None = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, user: AuthUser | None = None, warnings: list[str] | None = None) -> AuthResult:
        return cls(success=True, user=user, warnings=list(warnings or []))

    @classmethod
    def fail(cls, code: AuthErrorCode, message: str) -> AuthResult:
        return cls(success=False, error=AuthError(code=code, message=message))
