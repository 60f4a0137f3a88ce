"""
auth/dependencies.py -- FastAPI Depends() helpers for the auth service.

The application lifespan builds one CredentialStore and one AuthService and
parks them on app.state. Route handlers receive them through these helpers
instead of reaching into app.state themselves, so tests can swap either one
with app.dependency_overrides.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import AuthService
from auth.store import CredentialStore


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService created in the application lifespan."""
    return request.app.state.auth_service


def get_credential_store(request: Request) -> CredentialStore:
    """Return the CredentialStore created in the application lifespan."""
    return request.app.state.credential_store
