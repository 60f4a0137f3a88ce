"""
auth/notifier.py -- Transactional email delivery via the Resend HTTP API.

The notifier is an optional collaborator of AuthService. When no API key is
configured, build_notifier() returns None and the service skips delivery --
a valid, silent no-op state rather than an error.

Delivery failures raise NotifierError. The service catches it, logs it, and
records a warning; a failed email never changes a flow's outcome.

Security:
  Every interpolated value (app name, link) is HTML-escaped before it goes
  into the message body. The token only ever appears inside the link.
"""

from __future__ import annotations

import html
import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

import requests

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authkit.notifier")

RESEND_API_URL = "https://api.resend.com/emails"

_TIMEOUT_SECONDS = 10

_BUTTON_STYLE = (
    "background-color: #0070f3; color: white; padding: 10px 20px; "
    "text-decoration: none; border-radius: 5px; display: inline-block;"
)


class NotifierError(Exception):
    """Raised when an email could not be handed to the delivery provider."""


def verification_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/verify-email?token={quote(token)}"


def password_reset_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/reset-password?token={quote(token)}"


def _render(heading: str, paragraphs: list[str], link: str, button: str, expiry: str, footer: str = "") -> str:
    """Build the shared HTML layout. paragraphs and footer must be pre-escaped."""
    safe_link = html.escape(link, quote=True)
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    tail = f"<p>{footer}</p>" if footer else ""
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h1>{heading}</h1>"
        f"{body}"
        f'<p><a href="{safe_link}" style="{_BUTTON_STYLE}">{button}</a></p>'
        "<p>Or copy and paste this URL into your browser:</p>"
        f'<p style="word-break: break-all;">{safe_link}</p>'
        f"<p>This link will expire in {expiry}.</p>"
        f"{tail}"
        "</div>"
    )


class ResendNotifier:
    """Sends verification and password-reset emails through Resend.

    A single requests.Session is reused across sends for connection pooling.
    When the notifier creates its own session, max_redirects is lowered from
    the requests default of 30: the API is a fixed endpoint and should never
    redirect. A session passed in by the caller is used as given.
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str | None = None,
        app_name: str = "App",
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name or None
        self.app_name = app_name
        if session is None:
            session = requests.Session()
            session.max_redirects = 3
        self._session = session

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>" if self.from_name else self.from_email

    def send_email(self, to: str, subject: str, html_body: str) -> None:
        """POST one message to Resend. Raises NotifierError on any failure."""
        try:
            resp = self._session.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.sender, "to": to, "subject": subject, "html": html_body},
                timeout=_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise NotifierError(f"Resend request failed: {e}") from e
        if not resp.ok:
            try:
                message = resp.json().get("message") or "Unknown error"
            except ValueError:
                message = "Unknown error"
            raise NotifierError(f"Resend API error ({resp.status_code}): {message}")
        logger.info("Email sent: subject=%r", subject)

    def send_verification_email(self, email: str, token: str, base_url: str) -> None:
        app = html.escape(self.app_name)
        body = _render(
            heading="Verify your email",
            paragraphs=[
                f"Thank you for signing up for {app}!",
                "Please click the link below to verify your email address:",
            ],
            link=verification_link(base_url, token),
            button="Verify Email",
            expiry="24 hours",
        )
        self.send_email(email, f"Verify your {self.app_name} email", body)

    def send_password_reset_email(self, email: str, token: str, base_url: str) -> None:
        app = html.escape(self.app_name)
        body = _render(
            heading="Reset your password",
            paragraphs=[
                f"You requested to reset your password for {app}.",
                "Click the link below to reset your password:",
            ],
            link=password_reset_link(base_url, token),
            button="Reset Password",
            expiry="1 hour",
            footer="If you didn't request this, please ignore this email.",
        )
        self.send_email(email, f"Reset your {self.app_name} password", body)


def build_notifier(settings: Settings) -> ResendNotifier | None:
    """Return a configured notifier, or None when email delivery is disabled."""
    if not settings.notifier_enabled:
        logger.info("RESEND_API_KEY not set -- email delivery disabled")
        return None
    return ResendNotifier(
        api_key=settings.resend_api_key,
        from_email=settings.resend_from_email,
        from_name=settings.resend_from_name,
        app_name=settings.app_name,
    )
