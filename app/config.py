"""Configuration settings for BrickVault."""

import os
import secrets
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = _env_bool("DEBUG", "false")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    # postgresql:// and postgres:// are rewritten to postgresql+psycopg:// (psycopg 3)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./brickvault.db")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "20" if APP_ENV == "production" else "10"))
    DB_POOL_TIMEOUT_SECONDS: int = int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "30"))
    DB_STATEMENT_TIMEOUT_MS: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "10000"))

    # Redis (password reset tokens)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT_SECONDS: float = float(os.getenv("REDIS_SOCKET_TIMEOUT_SECONDS", "5"))

    # JWT (password reset tokens are signed JWTs)
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    RESET_TOKEN_TTL_SECONDS: int = int(os.getenv("RESET_TOKEN_TTL_SECONDS", "3600"))
    RESET_TOKEN_USED_TTL_SECONDS: int = int(os.getenv("RESET_TOKEN_USED_TTL_SECONDS", "300"))

    # Passwords
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Sessions
    SESSION_TTL_HOURS: int = int(os.getenv("SESSION_TTL_HOURS", "24"))
    REMEMBER_ME_TTL_HOURS: int = int(os.getenv("REMEMBER_ME_TTL_HOURS", "720"))
    SESSION_CLEANUP_ENABLED: bool = _env_bool("SESSION_CLEANUP_ENABLED", "true")
    SESSION_CLEANUP_INTERVAL_HOURS: float = float(os.getenv("SESSION_CLEANUP_INTERVAL_HOURS", "24"))
    INVALIDATE_SESSIONS_ON_RESET: bool = _env_bool("INVALIDATE_SESSIONS_ON_RESET", "true")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", "true")

    # Email
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS: bool = _env_bool("SMTP_USE_TLS", "true")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "noreply@brickvault.local")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    def __init__(self) -> None:
        self._generated_secret = not self.JWT_SECRET_KEY
        if self._generated_secret:
            self.JWT_SECRET_KEY = secrets.token_urlsafe(32)

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        warnings = []
        if self._generated_secret:
            warnings.append("JWT_SECRET_KEY is not set - using auto-generated key (not persistent across restarts)")
        if self.is_production and self.DATABASE_URL.startswith("sqlite"):
            warnings.append("DATABASE_URL points at SQLite in production")
        if self.BCRYPT_ROUNDS < 10 and self.is_production:
            warnings.append(f"BCRYPT_ROUNDS={self.BCRYPT_ROUNDS} is too low for production")
        return warnings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
