"""Signing and verification of password-reset tokens."""

import enum
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import get_settings

PASSWORD_RESET_TYPE = "password-reset"


class TokenFailure(enum.Enum):
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"


@dataclass
class ResetTokenCheck:
    """Outcome of verifying a reset token: claims on success, a failure otherwise."""

    ok: bool
    claims: dict[str, Any] | None = None
    failure: TokenFailure | None = None

    @property
    def user_id(self) -> int | None:
        if not self.claims:
            return None
        return int(self.claims["sub"])


class JWTService:
    """Handles reset-token creation and validation."""

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = get_settings()
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.RESET_TOKEN_TTL_SECONDS
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def create_reset_token(self, user_id: int) -> str:
        """Sign a token proving a reset was requested for ``user_id``."""
        issued = self.clock()
        payload = {
            "sub": str(user_id),
            "type": PASSWORD_RESET_TYPE,
            "iat": int(issued.timestamp()),
            "exp": int((issued + timedelta(seconds=self.ttl_seconds)).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_reset_token(self, token: str) -> ResetTokenCheck:
        """Check signature, expiry and type, in that order."""
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            return ResetTokenCheck(ok=False, failure=TokenFailure.EXPIRED)
        except JWTError:
            return ResetTokenCheck(ok=False, failure=TokenFailure.INVALID_SIGNATURE)

        if claims.get("type") != PASSWORD_RESET_TYPE or not str(claims.get("sub", "")).isdigit():
            return ResetTokenCheck(ok=False, failure=TokenFailure.WRONG_TYPE)
        return ResetTokenCheck(ok=True, claims=claims)


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get singleton JWT service instance."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
