"""
auth/store.py -- SQLAlchemy Core persistence layer for credential entities.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user / _row_to_verification_token / _row_to_reset_token are the
mappers. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Uniqueness is enforced by the database, not by check-then-insert in code:
  UNIQUE(users.email) and UNIQUE(token) on both token tables. insert_user()
  turns the IntegrityError into DuplicateEmailError so a registration that
  raced past the service's existence check still fails cleanly.

  Token consumption is conditional. consume_reset_token() flips used only
  WHERE used = 0 and consume_verification_token() deletes only a row that
  still exists; each checks rowcount inside the same transaction as the user
  update. Two concurrent submissions of one token cannot both succeed, and a
  failed user update rolls the token back to its unconsumed state.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.schema import CreateTable

from auth.models import PasswordResetToken, TokenKind, User, VerificationToken, normalize_email

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'authkit.db'}"

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for credential store failures."""


class DuplicateEmailError(StoreError):
    """Raised when inserting a user whose normalized email already exists."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),  # UUID4 string
    Column("email", String(255), nullable=False, unique=True),  # always normalized
    Column("password_hash", Text, nullable=False),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_verification_tokens = Table(
    "verification_tokens",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token", String(64), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_password_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token", String(64), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_TOKEN_TABLES: dict[TokenKind, Table] = {
    TokenKind.verification: _verification_tokens,
    TokenKind.password_reset: _password_reset_tokens,
}


def schema_sql(db_url: str = _DEFAULT_DB_URL) -> str:
    """Return the CREATE TABLE statements for the target database's dialect.

    Compiles against the dialect named in db_url without opening a connection,
    so it works for databases the caller cannot reach (e.g. to hand the DDL to
    a DBA).
    """
    dialect = make_url(db_url).get_dialect()()
    statements = [str(CreateTable(table).compile(dialect=dialect)).strip() + ";" for table in _metadata.sorted_tables]
    return "\n\n".join(statements) + "\n"


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User, VerificationToken and PasswordResetToken entities.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        user = store.insert_user(User(email="a@example.com", password_hash=hash_password("pw")))
        store.find_user_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def find_user_by_email(self, email: str) -> User | None:
        """Look up a user by email. The argument is normalized before lookup."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def insert_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises DuplicateEmailError if the normalized email already exists. This
        is the authoritative uniqueness check; callers that look the email up
        first can still lose a race to a concurrent insert.
        """
        now = _now_iso()
        user.id = user.id or _new_id()
        user.email = normalize_email(user.email)
        user.created_at = now
        user.updated_at = now
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        email=user.email,
                        password_hash=user.password_hash,
                        email_verified=1 if user.email_verified else 0,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as e:
            raise DuplicateEmailError(f"email already registered: {user.email}") from e
        return user

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: password_hash, email_verified. email_verified must be
        passed as bool; this method converts to int for storage.

        Returns True if a row was updated, False if user_id was not found.
        """
        if "email_verified" in fields:
            fields["email_verified"] = 1 if fields["email_verified"] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Token queries (generic over TokenKind)
    # ------------------------------------------------------------------

    def find_token_by_value(self, kind: TokenKind, token: str) -> VerificationToken | PasswordResetToken | None:
        """Look up a token record by its opaque string. O(1) via UNIQUE index."""
        table = _TOKEN_TABLES[kind]
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.token == token)).fetchone()
        if row is None:
            return None
        return _row_to_token(kind, row)

    def insert_token(self, kind: TokenKind, record: VerificationToken | PasswordResetToken):
        """Insert a token record and return it with id and created_at filled in."""
        record.id = record.id or _new_id()
        record.created_at = _now_iso()
        values = {
            "id": record.id,
            "user_id": record.user_id,
            "token": record.token,
            "expires_at": record.expires_at,
            "created_at": record.created_at,
        }
        if kind is TokenKind.password_reset:
            values["used"] = 1 if record.used else 0
        with self.engine.connect() as conn:
            conn.execute(_TOKEN_TABLES[kind].insert().values(**values))
            conn.commit()
        return record

    def update_token(self, kind: TokenKind, token_id: str, **fields) -> bool:
        """Update fields on a token record. Returns False if token_id was not found."""
        if "used" in fields:
            fields["used"] = 1 if fields["used"] else 0
        table = _TOKEN_TABLES[kind]
        with self.engine.connect() as conn:
            result = conn.execute(table.update().where(table.c.id == token_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_token(self, kind: TokenKind, token_id: str) -> bool:
        """Delete a token record. Returns True only for the caller that removed it."""
        table = _TOKEN_TABLES[kind]
        with self.engine.connect() as conn:
            result = conn.execute(table.delete().where(table.c.id == token_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Atomic consumption
    # ------------------------------------------------------------------

    def consume_verification_token(self, token_id: str, user_id: str) -> bool:
        """Delete the token and mark its owner verified in one transaction.

        Returns False when the token row is already gone (another request
        consumed it first). Raises StoreError -- after rolling back, so the
        token survives for a retry -- when the owning user cannot be updated.
        """
        with self.engine.begin() as conn:
            deleted = conn.execute(_verification_tokens.delete().where(_verification_tokens.c.id == token_id))
            if deleted.rowcount == 0:
                return False
            updated = conn.execute(
                _users.update().where(_users.c.id == user_id).values(email_verified=1, updated_at=_now_iso())
            )
            if updated.rowcount == 0:
                raise StoreError(f"user {user_id} not found while verifying email")
        return True

    def consume_reset_token(self, token_id: str, user_id: str, password_hash: str) -> bool:
        """Claim an unused reset token and set the new password in one transaction.

        The claim is a compare-and-swap: UPDATE ... SET used = 1 WHERE used = 0.
        Returns False when the token was already used. Raises StoreError --
        after rolling back the claim -- when the owning user cannot be updated.
        """
        with self.engine.begin() as conn:
            claimed = conn.execute(
                _password_reset_tokens.update()
                .where((_password_reset_tokens.c.id == token_id) & (_password_reset_tokens.c.used == 0))
                .values(used=1)
            )
            if claimed.rowcount == 0:
                return False
            updated = conn.execute(
                _users.update().where(_users.c.id == user_id).values(password_hash=password_hash, updated_at=_now_iso())
            )
            if updated.rowcount == 0:
                raise StoreError(f"user {user_id} not found while resetting password")
        return True

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired_tokens(self, now: datetime | None = None) -> int:
        """Delete expired rows of both token kinds. Returns the number removed.

        expires_at is written with fixed microsecond precision in UTC, so a
        string comparison orders the same as a datetime comparison.
        """
        cutoff = (now or datetime.now(timezone.utc)).isoformat(timespec="microseconds")
        removed = 0
        with self.engine.begin() as conn:
            for table in _TOKEN_TABLES.values():
                result = conn.execute(table.delete().where(table.c.expires_at < cutoff))
                removed += result.rowcount
        return removed

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.select().limit(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_verification_token(row) -> VerificationToken:
    return VerificationToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        used=bool(row.used),
        created_at=row.created_at,
    )


def _row_to_token(kind: TokenKind, row):
    if kind is TokenKind.verification:
        return _row_to_verification_token(row)
    return _row_to_reset_token(row)
