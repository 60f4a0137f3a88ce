"""Unit tests for main.py -- the migrate and purge-tokens commands.

Each test points DATABASE_URL at a file under tmp_path and clears the
get_settings() cache so the new value is picked up.
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import TokenKind, User, VerificationToken
from auth.store import CredentialStore
from auth.tokens import expires_at, generate_token
from core.config import get_settings
from main import main


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def test_migrate_print_sql(db_url, capsys):
    assert main(["migrate", "--print-sql"]) == 0
    out = capsys.readouterr().out
    assert "CREATE TABLE users" in out
    assert "CREATE TABLE password_reset_tokens" in out


def test_migrate_creates_tables(db_url, tmp_path, capsys):
    assert main(["migrate"]) == 0
    assert "Migration completed successfully." in capsys.readouterr().out
    assert (tmp_path / "cli.db").exists()


def test_purge_tokens_reports_count(db_url, capsys):
    store = CredentialStore(db_url)
    user = store.insert_user(User(email="old@example.com", password_hash="x"))
    past = datetime.now(timezone.utc) - timedelta(days=3)
    store.insert_token(
        TokenKind.verification,
        VerificationToken(user_id=user.id, token=generate_token(), expires_at=expires_at(timedelta(hours=24), past)),
    )
    store.close()

    assert main(["purge-tokens"]) == 0
    assert "Removed 1 expired token(s)." in capsys.readouterr().out


def test_missing_database_url_exits_nonzero(monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DEBUG", "false")
    get_settings.cache_clear()
    try:
        assert main(["migrate"]) == 1
        assert "DATABASE_URL" in capsys.readouterr().err
    finally:
        get_settings.cache_clear()


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: authkit" in capsys.readouterr().out
