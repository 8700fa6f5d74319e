"""
auth/notifier.py -- Outbound email for OTP codes and password-reset links.

The engine depends only on the Notifier protocol. Two implementations:

  SmtpNotifier -- smtplib over STARTTLS with the EMAIL_USER / EMAIL_PASS
      credential pair. One attempt per message, no retry. Any SMTP or socket
      failure is raised as NotificationError so the engine can report it.

  LogNotifier -- writes the message to the log instead of sending it. Only
      build_notifier() in DEBUG mode hands this out, when no SMTP credentials
      are configured. It logs the OTP and link on purpose: local development
      has no other way to read them.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authservice.notifier")

OTP_SUBJECT = "OTP Verification"
RESET_SUBJECT = "Password Reset"


class NotificationError(Exception):
    """An email could not be handed to the mail server."""


class Notifier(Protocol):
    def send_otp(self, to: str, otp: str) -> None: ...

    def send_password_reset(self, to: str, reset_link: str) -> None: ...


def otp_text(otp: str) -> str:
    return f"Your OTP is: {otp}"


def reset_html(reset_link: str) -> str:
    return f'Click <a href="{reset_link}">here</a> to reset your password.'


def reset_text(reset_link: str) -> str:
    return f"Click the link below to reset your password:\n{reset_link}"


class SmtpNotifier:
    """Send mail through an authenticated SMTP relay (Gmail by default)."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str = "",
        timeout: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpNotifier:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.email_user,
            password=settings.email_pass,
            sender=settings.email_from,
            timeout=settings.smtp_timeout_seconds,
        )

    def send_otp(self, to: str, otp: str) -> None:
        self._send(to, OTP_SUBJECT, text=otp_text(otp))

    def send_password_reset(self, to: str, reset_link: str) -> None:
        self._send(to, RESET_SUBJECT, text=reset_text(reset_link), html=reset_html(reset_link))

    def _send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")

        ctx = ssl.create_default_context()
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls(context=ctx)
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed (%s): %s", to, subject, exc)
            raise NotificationError(f"could not send {subject!r} email") from exc
        logger.info("Email sent to %s (%s)", to, subject)


class LogNotifier:
    """Development stand-in that logs messages instead of sending them."""

    def send_otp(self, to: str, otp: str) -> None:
        logger.warning("[dev] %s for %s: %s", OTP_SUBJECT, to, otp_text(otp))

    def send_password_reset(self, to: str, reset_link: str) -> None:
        logger.warning("[dev] %s for %s: %s", RESET_SUBJECT, to, reset_link)


def build_notifier(settings: Settings) -> Notifier:
    """Return the notifier for this process.

    SMTP when EMAIL_USER and EMAIL_PASS are set. Otherwise LogNotifier in
    DEBUG mode, and a startup failure in production.
    """
    if settings.email_user and settings.email_pass:
        return SmtpNotifier.from_settings(settings)
    if settings.debug:
        logger.warning("WARNING: EMAIL_USER/EMAIL_PASS not set. Emails will be logged, not sent.")
        return LogNotifier()
    raise ValueError(
        "EMAIL_USER and EMAIL_PASS are required in production mode. "
        "To run in development mode, set DEBUG=true."
    )
