"""
api/routes/v1/auth.py -- Credential flow REST endpoints.

Routes:
  POST /api/v1/auth/login            -- password login; returns the user
  POST /api/v1/auth/register         -- create account; sends verification email
  POST /api/v1/auth/forgot-password  -- start password reset; always 200
  POST /api/v1/auth/reset-password   -- consume reset token; set new password
  POST /api/v1/auth/verify-email     -- consume verification token

Security:
  [C1] Login returns the same 401 body for an unknown email and a wrong
       password. forgot-password returns the same 200 body for every input.
  [M5] Cache-Control: no-store on every auth response.

Handlers are plain `def`: bcrypt is CPU-bound and the store is synchronous,
so FastAPI runs them in its threadpool instead of blocking the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    CredentialsRequest,
    ErrorDetail,
    ErrorResponse,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailRequest,
)
from auth.dependencies import get_auth_service
from auth.models import AuthErrorCode, AuthResult
from auth.service import AuthService

router = APIRouter()

# AuthErrorCode -> HTTP status.
_STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.DUPLICATE_EMAIL: 409,
    AuthErrorCode.INVALID_TOKEN: 400,
    AuthErrorCode.EXPIRED: 410,
    AuthErrorCode.INTERNAL_ERROR: 500,
}


def _to_response(result: AuthResult, success_status: int = 200) -> JSONResponse:
    """Translate a service AuthResult into a JSON response with no-store caching."""
    if result.success:
        body = AuthResponse(
            user=UserResponse.from_auth_user(result.user) if result.user else None,
            warnings=result.warnings,
        ).model_dump()
        status = success_status
    else:
        body = ErrorResponse(
            error=ErrorDetail(code=result.error.code.value, message=result.error.message)
        ).model_dump()
        status = _STATUS_BY_CODE[result.error.code]
    resp = JSONResponse(status_code=status, content=body)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/login", response_model=AuthResponse)
def login(body: CredentialsRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Authenticate with email and password."""
    return _to_response(service.login(body.email, body.password))


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(body: CredentialsRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Create an unverified account and issue a verification token.

    A failed verification email still returns 201; the problem is listed in
    the warnings field.
    """
    return _to_response(service.register(body.email, body.password), success_status=201)


@router.post("/auth/forgot-password", response_model=AuthResponse)
def forgot_password(body: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Request a password reset email. Always 200 [C1]."""
    return _to_response(service.forgot_password(body.email))


@router.post("/auth/reset-password", response_model=AuthResponse)
def reset_password(body: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Set a new password using a single-use reset token."""
    return _to_response(service.reset_password(body.token, body.password))


@router.post("/auth/verify-email", response_model=AuthResponse)
def verify_email(body: VerifyEmailRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Mark the account verified using a single-use verification token."""
    return _to_response(service.verify_email(body.token))
