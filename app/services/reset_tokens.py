"""Reset-token cache: TTL-bound redemption records for password-reset tokens.

Tokens are signed JWTs and are verified before this cache is consulted. The
cache only answers "has this exact token been redeemed yet", and lets Redis
expire abandoned records on its own.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from redis import Redis

from app.clock import utcnow
from app.config import get_settings
from app.errors import store_errors
from app.log import mask_token

logger = logging.getLogger("brickvault")

KEY_PREFIX = "reset:"


@dataclass
class ResetTokenRecord:
    user_id: int
    email: str
    used: bool
    created_at: str
    used_at: str | None = None

    @classmethod
    def from_json(cls, raw: str) -> "ResetTokenRecord":
        data = json.loads(raw)
        return cls(
            user_id=int(data["userId"]),
            email=data["email"],
            used=bool(data.get("used", False)),
            created_at=data.get("createdAt", ""),
            used_at=data.get("usedAt"),
        )

    def to_json(self) -> str:
        payload: dict[str, Any] = {
            "userId": self.user_id,
            "email": self.email,
            "used": self.used,
            "createdAt": self.created_at,
        }
        if self.used_at is not None:
            payload["usedAt"] = self.used_at
        return json.dumps(payload)


def _timestamp(moment: datetime) -> str:
    return moment.isoformat() + "Z"


class ResetTokenCache:
    """Redis-backed store of reset-token redemption state."""

    def __init__(
        self,
        client: Redis,
        *,
        ttl_seconds: int | None = None,
        used_ttl_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.client = client
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.RESET_TOKEN_TTL_SECONDS
        self.used_ttl_seconds = (
            used_ttl_seconds if used_ttl_seconds is not None else settings.RESET_TOKEN_USED_TTL_SECONDS
        )

    @staticmethod
    def _key(token: str) -> str:
        return f"{KEY_PREFIX}{token}"

    def store(self, token: str, *, user_id: int, email: str, ttl_seconds: int | None = None) -> None:
        """Record a freshly issued, unused token."""
        ttl = ttl_seconds or self.ttl_seconds
        record = ResetTokenRecord(user_id=user_id, email=email, used=False, created_at=_timestamp(utcnow()))
        with store_errors():
            self.client.setex(self._key(token), ttl, record.to_json())
        logger.info("Password reset token stored token=%s ttl=%s user=%s", mask_token(token), ttl, user_id)

    def get(self, token: str) -> ResetTokenRecord | None:
        with store_errors():
            raw = self.client.get(self._key(token))
        if raw is None:
            return None
        return ResetTokenRecord.from_json(raw)

    def mark_used(self, token: str) -> bool:
        """Flag the token as redeemed and shorten its TTL.

        The record is kept briefly so a replay is reported as "already used".
        Returns False if the record has already expired.
        """
        record = self.get(token)
        if record is None:
            return False
        record.used = True
        record.used_at = _timestamp(utcnow())
        with store_errors():
            self.client.setex(self._key(token), self.used_ttl_seconds, record.to_json())
        logger.info("Password reset token marked as used token=%s user=%s", mask_token(token), record.user_id)
        return True

    def delete(self, token: str) -> bool:
        with store_errors():
            removed = self.client.delete(self._key(token))
        if removed:
            logger.info("Password reset token deleted token=%s", mask_token(token))
        return bool(removed)

    def ping(self) -> bool:
        with store_errors():
            return bool(self.client.ping())


def create_redis_client() -> Redis:
    """Build a Redis client with explicit socket timeouts."""
    settings = get_settings()
    return Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


_reset_token_cache: ResetTokenCache | None = None


def get_reset_token_cache() -> ResetTokenCache:
    """Get singleton reset-token cache instance."""
    global _reset_token_cache
    if _reset_token_cache is None:
        _reset_token_cache = ResetTokenCache(create_redis_client())
    return _reset_token_cache
