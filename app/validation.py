"""Input validation shared by the auth and profile services."""

import re

from app.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt ignores anything past this


def normalize_email(email: str | None) -> str:
    """Lower-case and strip an email address. Raises ValidationError if malformed."""
    normalized = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized) or len(normalized) > 256:
        raise ValidationError("Valid email is required", details={"field": "email"})
    return normalized


def validate_password(password: str | None, field: str = "password") -> str:
    """Enforce the password policy: 8+ chars with lower, upper and a digit."""
    password = password or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters long", details={"field": field})
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password must be at most 72 bytes long", details={"field": field})
    if not (re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"\d", password)):
        raise ValidationError(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number",
            details={"field": field},
        )
    return password


def validate_username(username: str | None) -> str:
    username = (username or "").strip()
    if not 2 <= len(username) <= 30:
        raise ValidationError("Username must be between 2 and 30 characters", details={"field": "username"})
    if not USERNAME_PATTERN.match(username):
        raise ValidationError(
            "Username can only contain letters, numbers, and underscores", details={"field": "username"}
        )
    return username


def validate_display_name(display_name: str | None) -> str:
    display_name = (display_name or "").strip()
    if not 1 <= len(display_name) <= 50:
        raise ValidationError("Display name must be between 1 and 50 characters", details={"field": "display_name"})
    return display_name


def validate_country(country: str | None) -> str | None:
    if country is None:
        return None
    country = country.strip()
    if not 2 <= len(country) <= 50:
        raise ValidationError("Country must be between 2 and 50 characters", details={"field": "country"})
    return country
