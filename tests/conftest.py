"""
tests/conftest.py -- Shared test fixtures for AuthKit.

This module provides:
  - fast_bcrypt (autouse): drops the bcrypt cost factor so hashing in tests is
    milliseconds, not a quarter second per call
  - store: isolated in-memory CredentialStore per test
  - notifier: MagicMock standing in for ResendNotifier (records sends, so
    tests read issued tokens back from call_args)
  - service: AuthService wired to store + notifier, running background
    sends inline so tokens are visible as soon as a flow returns
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

The DEBUG env var must be set before any api/ import so get_settings() falls
back to a development database instead of raising for a missing DATABASE_URL.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from concurrent.futures import Executor, Future
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any core/api import so get_settings() does not
# raise for a missing DATABASE_URL.
os.environ.setdefault("DEBUG", "true")

import bcrypt
import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.notifier import ResendNotifier
from auth.service import AuthService
from auth.store import CredentialStore

_real_gensalt = bcrypt.gensalt


class InlineExecutor(Executor):
    """Runs submitted work on the calling thread so tests see sends at once."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Use the minimum bcrypt cost (4 rounds) for every hash made in a test."""
    monkeypatch.setattr(bcrypt, "gensalt", lambda rounds=4, prefix=b"2b": _real_gensalt(4, prefix))


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def notifier() -> MagicMock:
    """A notifier double. Sent tokens are read back from call_args."""
    return MagicMock(spec=ResendNotifier)


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def service(store: CredentialStore, notifier: MagicMock, inline_executor: InlineExecutor) -> AuthService:
    return AuthService(store, notifier=notifier, app_url="https://app.example.com", executor=inline_executor)


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test store and service into app.state so routes see
    an isolated database and a mocked notifier rather than real delivery.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.credential_store = store
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, MagicMock], None, None]:
    """Yield (client, notifier) for API integration tests.

    The database name includes the test module name so modules never share
    state.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = CredentialStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    mock_notifier = MagicMock(spec=ResendNotifier)
    svc = AuthService(store, notifier=mock_notifier, app_url="https://app.example.com", executor=InlineExecutor())

    app.router.lifespan_context = _patch_lifespan(store, svc)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mock_notifier

    store.close()
