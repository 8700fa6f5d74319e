"""Unit tests for auth/notifier.py -- SMTP delivery and notifier selection.

smtplib.SMTP is patched; no network traffic leaves the test process.
"""

import smtplib
from unittest.mock import patch

import pytest

from auth.notifier import (
    LogNotifier,
    NotificationError,
    SmtpNotifier,
    build_notifier,
)
from core.config import Settings


def _notifier() -> SmtpNotifier:
    return SmtpNotifier(host="smtp.test", port=587, username="bot@x.com", password="pw", timeout=5)


class TestSmtpNotifier:
    def test_send_otp_message(self) -> None:
        with patch("auth.notifier.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            _notifier().send_otp("a@x.com", "4821")

        smtp_cls.assert_called_once_with("smtp.test", 587, timeout=5)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot@x.com", "pw")
        msg = smtp.send_message.call_args.args[0]
        assert msg["To"] == "a@x.com"
        assert msg["From"] == "bot@x.com"
        assert msg["Subject"] == "OTP Verification"
        assert "Your OTP is: 4821" in msg.get_content()

    def test_send_password_reset_has_html_link(self) -> None:
        link = "http://client.test/reset-password/tok"
        with patch("auth.notifier.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            _notifier().send_password_reset("a@x.com", link)

        msg = smtp.send_message.call_args.args[0]
        assert msg["Subject"] == "Password Reset"
        html = msg.get_body(preferencelist=("html",)).get_content()
        assert f'href="{link}"' in html

    def test_smtp_failure_raises_notification_error(self) -> None:
        with patch("auth.notifier.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            smtp.send_message.side_effect = smtplib.SMTPServerDisconnected("gone")
            with pytest.raises(NotificationError):
                _notifier().send_otp("a@x.com", "1234")

    def test_connection_refused_raises_notification_error(self) -> None:
        with patch("auth.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError()):
            with pytest.raises(NotificationError):
                _notifier().send_otp("a@x.com", "1234")


class TestBuildNotifier:
    def test_smtp_when_credentials_present(self) -> None:
        settings = Settings(debug=True, email_user="bot@x.com", email_pass="pw")
        assert isinstance(build_notifier(settings), SmtpNotifier)

    def test_log_notifier_in_debug_without_credentials(self) -> None:
        settings = Settings(debug=True, email_user="", email_pass="")
        assert isinstance(build_notifier(settings), LogNotifier)

    def test_production_requires_credentials(self) -> None:
        settings = Settings(
            debug=False,
            access_token_secret="a" * 32,
            refresh_token_secret="r" * 32,
            reset_token_secret="s" * 32,
            email_user="",
            email_pass="",
        )
        with pytest.raises(ValueError, match="EMAIL_USER"):
            build_notifier(settings)


def test_log_notifier_does_not_raise() -> None:
    notifier = LogNotifier()
    notifier.send_otp("a@x.com", "1234")
    notifier.send_password_reset("a@x.com", "http://client.test/reset-password/tok")
