"""
auth/tokens.py -- Password hashing and one-time token generation.

Security design decisions:
  Passwords: bcrypt used directly. Bcrypt is the right choice for low-entropy
       secrets (passwords) because its cost factor makes brute-force of a
       leaked digest expensive. Each digest carries its own random salt. The
       _DUMMY_HASH constant enables timing equalization in the login flow so
       response time does not reveal whether an email is registered [C1].

  One-time tokens: secrets.token_hex(32) gives 256 bits of entropy encoded as
       64 hex characters. Tokens are pure lookup keys -- they encode no user
       id, email, or timestamp. Collisions are negligible, so there is no
       uniqueness retry; the UNIQUE constraint in the store is the backstop.

Layer rule: no imports from api/. Pure functions -- no store, no network.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import bcrypt

# Lifetimes of the two token kinds.
VERIFICATION_TOKEN_TTL = timedelta(hours=24)
PASSWORD_RESET_TOKEN_TTL = timedelta(hours=1)

# 32 bytes -> 64 hex characters.
TOKEN_BYTES = 32

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


# bcrypt only considers the first 72 bytes of input; bcrypt 5.x raises on
# longer input instead of truncating. Truncate explicitly so hash and verify
# agree on every release.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the given plaintext password."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the digest. Never raises.

    A malformed or empty digest (bcrypt raises ValueError) is a mismatch.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than later ones. The login flow verifies against this digest when
# the email is unknown, so both failure paths pay one bcrypt check.
_DUMMY_HASH: str = hash_password("authkit_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt verification against the dummy digest and discard it."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Token generation
# ---------------------------------------------------------------------------


def generate_token() -> str:
    """Return a fresh opaque token: 32 CSPRNG bytes as 64 hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def generate_secure_token(length: int = TOKEN_BYTES) -> str:
    """Return a hex token built from `length` random bytes (2 * length chars)."""
    if length < 1:
        raise ValueError("length must be at least 1 byte")
    return secrets.token_hex(length)


# ---------------------------------------------------------------------------
# Expiry helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expires_at(ttl: timedelta, now: datetime | None = None) -> str:
    """Return the ISO 8601 UTC expiry timestamp `ttl` from `now`.

    Fixed microsecond precision keeps stored values lexically ordered, which
    the store relies on when purging expired rows in SQL.
    """
    return ((now or utcnow()) + ttl).isoformat(timespec="microseconds")


def is_expired(expires_at_iso: str, now: datetime | None = None) -> bool:
    """True once `now` has passed the stored expiry.

    Naive timestamps (written by an older schema or by hand) are read as UTC.
    """
    expiry = datetime.fromisoformat(expires_at_iso)
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry < (now or utcnow())
