"""
auth/service.py -- The five credential flows: login, register, forgot
password, reset password, verify email.

Every flow returns an AuthResult and never raises. Store and hasher failures
are logged and mapped to INTERNAL_ERROR at this boundary; notifier failures
are logged and recorded as warnings on a still-successful result.

Security design decisions:
  [C1] Anti-enumeration. login() gives the same code and message for an
       unknown email and a wrong password, and pays one bcrypt check on both
       paths. forgot_password() returns the same success result whether or
       not the email is registered, and swallows its own internal errors.
       The reset email is handed to a background executor so a registered
       email does not hold the caller for a Resend round trip.

  Single use. verify_email() and reset_password() consume their token through
       the store's conditional, transactional consume_* methods, so the
       consumption is committed before success is returned and a concurrent
       double-submit succeeds at most once.

  Expired verification tokens are deleted on sight so they can never later
       race back into validity.

Tokens and passwords are never written to the log.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime

from auth.models import (
    AuthErrorCode,
    AuthResult,
    AuthUser,
    PasswordResetToken,
    TokenKind,
    User,
    VerificationToken,
    normalize_email,
)
from auth.notifier import ResendNotifier
from auth.store import CredentialStore, DuplicateEmailError
from auth.tokens import (
    PASSWORD_RESET_TOKEN_TTL,
    VERIFICATION_TOKEN_TTL,
    burn_password_check,
    expires_at,
    generate_token,
    hash_password,
    is_expired,
    utcnow,
    verify_password,
)

logger = logging.getLogger("authkit.auth")

_INVALID_CREDENTIALS_MSG = "Invalid email or password"
_INVALID_RESET_TOKEN_MSG = "Invalid or expired reset token"
_INVALID_VERIFICATION_TOKEN_MSG = "Invalid or expired verification token"

# Warning strings attached to degraded-but-successful results.
WARN_VERIFICATION_TOKEN_NOT_STORED = "verification_token_not_stored"
WARN_VERIFICATION_EMAIL_NOT_SENT = "verification_email_not_sent"


class AuthService:
    """Orchestrates the credential flows against a CredentialStore.

    The notifier is injected; None means email delivery is disabled. clock is
    injectable so expiry can be tested without sleeping. executor runs the
    password-reset sends; when omitted the service owns a small thread pool
    and close() shuts it down.

    Usage:
        service = AuthService(CredentialStore(url), notifier=build_notifier(settings), app_url=settings.app_url)
        result = service.register("user@example.com", "correct horse")
        ...
        service.close()
    """

    def __init__(
        self,
        store: CredentialStore,
        notifier: ResendNotifier | None = None,
        app_url: str = "http://localhost:3000",
        clock: Callable[[], datetime] = utcnow,
        executor: Executor | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.app_url = app_url
        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="authkit-notify")

    def close(self) -> None:
        """Wait for queued emails to finish, then release the owned pool."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        try:
            user = self.store.find_user_by_email(normalize_email(email))
            if user is None:
                # Equalize timing -- do NOT return before running bcrypt [C1]
                burn_password_check(password)
                return AuthResult.fail(AuthErrorCode.INVALID_CREDENTIALS, _INVALID_CREDENTIALS_MSG)
            if not verify_password(password, user.password_hash):
                return AuthResult.fail(AuthErrorCode.INVALID_CREDENTIALS, _INVALID_CREDENTIALS_MSG)
            return AuthResult.ok(user=AuthUser.from_user(user))
        except Exception:
            logger.exception("Login failed unexpectedly")
            return AuthResult.fail(AuthErrorCode.INTERNAL_ERROR, "An error occurred during login")

    # ------------------------------------------------------------------
    # register
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> AuthResult:
        normalized = normalize_email(email)
        try:
            if self.store.find_user_by_email(normalized) is not None:
                return _duplicate_email()
            user = self.store.insert_user(User(email=normalized, password_hash=hash_password(password)))
        except DuplicateEmailError:
            # Lost the race to a concurrent registration between check and insert.
            logger.info("Registration rejected by unique constraint")
            return _duplicate_email()
        except Exception:
            logger.exception("Registration failed before the account was created")
            return AuthResult.fail(AuthErrorCode.INTERNAL_ERROR, "An error occurred during registration")

        warnings: list[str] = []
        token = generate_token()
        try:
            self.store.insert_token(
                TokenKind.verification,
                VerificationToken(
                    user_id=user.id,
                    token=token,
                    expires_at=expires_at(VERIFICATION_TOKEN_TTL, self._clock()),
                ),
            )
        except Exception:
            logger.exception("Failed to create verification token for user %s", user.id)
            warnings.append(WARN_VERIFICATION_TOKEN_NOT_STORED)
        else:
            if not self._notify_verification(user, token):
                warnings.append(WARN_VERIFICATION_EMAIL_NOT_SENT)

        logger.info("Registered user %s", user.id)
        return AuthResult.ok(user=AuthUser.from_user(user), warnings=warnings)

    def _notify_verification(self, user: User, token: str) -> bool:
        """Send the verification email. Returns False only on a delivery failure."""
        if self.notifier is None:
            return True
        try:
            self.notifier.send_verification_email(user.email, token, self.app_url)
        except Exception as e:  # delivery problems never fail the flow
            logger.error("Failed to send verification email to user %s: %s", user.id, e)
            return False
        return True

    # ------------------------------------------------------------------
    # forgot_password
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> AuthResult:
        """Start a password reset. Always succeeds, by contract [C1].

        The caller-visible result is identical whether the email is unknown,
        known, or the reset could not be issued. Problems are logged only.
        """
        try:
            user = self.store.find_user_by_email(normalize_email(email))
            if user is None:
                return AuthResult.ok()
            token = generate_token()
            self.store.insert_token(
                TokenKind.password_reset,
                PasswordResetToken(
                    user_id=user.id,
                    token=token,
                    expires_at=expires_at(PASSWORD_RESET_TOKEN_TTL, self._clock()),
                ),
            )
            if self.notifier is not None:
                self._executor.submit(self._notify_password_reset, user, token)
        except Exception:
            logger.exception("Forgot password failed; reporting success to caller")
        return AuthResult.ok()

    def _notify_password_reset(self, user: User, token: str) -> None:
        try:
            self.notifier.send_password_reset_email(user.email, token, self.app_url)
        except Exception as e:
            logger.error("Failed to send password reset email to user %s: %s", user.id, e)

    # ------------------------------------------------------------------
    # reset_password
    # ------------------------------------------------------------------

    def reset_password(self, token: str, new_password: str) -> AuthResult:
        try:
            record = self.store.find_token_by_value(TokenKind.password_reset, token)
            if record is None:
                return AuthResult.fail(AuthErrorCode.INVALID_TOKEN, _INVALID_RESET_TOKEN_MSG)
            if record.used:
                logger.info("Rejected already-used reset token %s", record.id)
                return AuthResult.fail(AuthErrorCode.INVALID_TOKEN, _INVALID_RESET_TOKEN_MSG)
            if is_expired(record.expires_at, self._clock()):
                return AuthResult.fail(AuthErrorCode.EXPIRED, "This reset token has expired")

            password_hash = hash_password(new_password)
            if not self.store.consume_reset_token(record.id, record.user_id, password_hash):
                # A concurrent request claimed the token after our lookup.
                logger.info("Reset token %s consumed concurrently", record.id)
                return AuthResult.fail(AuthErrorCode.INVALID_TOKEN, _INVALID_RESET_TOKEN_MSG)
        except Exception:
            logger.exception("Password reset failed; token left unused")
            return AuthResult.fail(AuthErrorCode.INTERNAL_ERROR, "An error occurred during password reset")
        logger.info("Password reset for user %s", record.user_id)
        return AuthResult.ok()

    # ------------------------------------------------------------------
    # verify_email
    # ------------------------------------------------------------------

    def verify_email(self, token: str) -> AuthResult:
        try:
            record = self.store.find_token_by_value(TokenKind.verification, token)
            if record is None:
                return AuthResult.fail(AuthErrorCode.INVALID_TOKEN, _INVALID_VERIFICATION_TOKEN_MSG)
            if is_expired(record.expires_at, self._clock()):
                # Consumed on sight: an expired token never becomes valid again.
                self.store.delete_token(TokenKind.verification, record.id)
                return AuthResult.fail(AuthErrorCode.EXPIRED, "This verification token has expired")
            if not self.store.consume_verification_token(record.id, record.user_id):
                logger.info("Verification token %s consumed concurrently", record.id)
                return AuthResult.fail(AuthErrorCode.INVALID_TOKEN, _INVALID_VERIFICATION_TOKEN_MSG)
        except Exception:
            logger.exception("Email verification failed; token left intact")
            return AuthResult.fail(AuthErrorCode.INTERNAL_ERROR, "An error occurred during email verification")
        logger.info("Verified email for user %s", record.user_id)
        return AuthResult.ok()


def _duplicate_email() -> AuthResult:
    return AuthResult.fail(AuthErrorCode.DUPLICATE_EMAIL, "An account with this email already exists")
