"""Logging setup and redaction helpers."""

import logging

LOGGER_NAME = "brickvault"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

TOKEN_PREFIX_LENGTH = 10


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configure root logging once and return the application logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    return logger


def mask_token(token: str | None) -> str:
    """Only the first few characters of a secret token may reach the logs."""
    if not token:
        return "<none>"
    return f"{token[:TOKEN_PREFIX_LENGTH]}..."


def mask_email(email: str | None) -> str:
    if not email or "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"
