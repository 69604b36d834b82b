"""Outbound email for password-reset links."""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import get_settings
from app.log import mask_email, mask_token

logger = logging.getLogger("brickvault")


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the SMTP server."""


class EmailService:
    """Sends transactional email over SMTP, or logs it when SMTP is not configured."""

    def __init__(
        self,
        *,
        smtp_host: str | None = None,
        smtp_port: int | None = None,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool | None = None,
        from_email: str | None = None,
        frontend_url: str | None = None,
    ) -> None:
        settings = get_settings()
        self.smtp_host = smtp_host if smtp_host is not None else settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.smtp_user = smtp_user if smtp_user is not None else settings.SMTP_USER
        self.smtp_password = smtp_password if smtp_password is not None else settings.SMTP_PASSWORD
        self.smtp_use_tls = smtp_use_tls if smtp_use_tls is not None else settings.SMTP_USE_TLS
        self.from_email = from_email or settings.EMAIL_FROM
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def reset_url(self, token: str) -> str:
        return f"{self.frontend_url}/reset-password?token={token}"

    def send_password_reset(self, to_email: str, token: str) -> None:
        """Email the reset link. Raises EmailDeliveryError on SMTP failure."""
        url = self.reset_url(token)
        text_body = (
            "You requested a password reset for your BrickVault account.\n\n"
            f"Open this link to choose a new password:\n{url}\n\n"
            "The link expires in 1 hour. If you didn't request this reset, ignore this email."
        )
        html_body = (
            "<h2>Reset Your Password</h2>"
            "<p>You requested a password reset for your BrickVault account.</p>"
            f'<p><a href="{url}">Reset Password</a></p>'
            f"<p>Or copy and paste this link in your browser: {url}</p>"
            "<p>This link will expire in 1 hour. If you didn't request this reset, please ignore this email.</p>"
        )

        if not self.is_configured:
            # Dev mode: the link goes to the server console instead of a mailbox
            logger.info(
                "PASSWORD RESET for %s: %s/reset-password?token=%s",
                mask_email(to_email),
                self.frontend_url,
                mask_token(token),
            )
            logger.debug("PASSWORD RESET link: %s", url)
            return

        self._send(to_email, "Reset Your Password", html_body, text_body)

    def _send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send email: {e}") from e

        logger.info("Email sent to=%s subject=%s", mask_email(to_email), subject)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get singleton email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
