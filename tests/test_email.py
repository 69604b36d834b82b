"""Tests for password-reset email delivery."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from app.services.email import EmailDeliveryError, EmailService


def _service(**overrides) -> EmailService:
    options = {
        "smtp_host": "smtp.example.com",
        "smtp_port": 587,
        "smtp_user": "mailer",
        "smtp_password": "secret",
        "smtp_use_tls": True,
        "from_email": "noreply@brickvault.test",
        "frontend_url": "https://brickvault.test/",
    }
    options.update(overrides)
    return EmailService(**options)


def test_reset_url():
    assert _service().reset_url("abc") == "https://brickvault.test/reset-password?token=abc"


def test_unconfigured_logs_instead_of_sending(caplog):
    service = _service(smtp_host="")
    assert service.is_configured is False
    with patch("app.services.email.smtplib.SMTP") as smtp, caplog.at_level("INFO", logger="brickvault"):
        service.send_password_reset("user@example.com", "0123456789abcdef")
    smtp.assert_not_called()
    assert "PASSWORD RESET" in caplog.text
    assert "0123456789abcdef" not in caplog.text


def test_sends_with_starttls():
    server = MagicMock()
    with patch("app.services.email.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        _service().send_password_reset("user@example.com", "tok")
    smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")
    from_addr, to_addr, body = server.sendmail.call_args.args
    assert from_addr == "noreply@brickvault.test"
    assert to_addr == "user@example.com"
    assert "reset-password?token=tok" in body


def test_smtp_failure_raises_delivery_error():
    with patch("app.services.email.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.side_effect = smtplib.SMTPConnectError(421, "busy")
        with pytest.raises(EmailDeliveryError):
            _service().send_password_reset("user@example.com", "tok")
