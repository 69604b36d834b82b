"""Authentication service: registration, login, logout and password reset."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import bcrypt
from sqlalchemy.orm import Session

from app.best_effort import best_effort
from app.config import get_settings
from app.errors import (
    AccountDisabledError,
    AlreadyExistsError,
    DuplicateKeyError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    ValidationError,
)
from app.log import mask_email, mask_token
from app.models.session import UserSession
from app.models.user import User
from app.services.credentials import CredentialStore, get_credential_store
from app.services.email import EmailService, get_email_service
from app.services.jwt import JWTService, TokenFailure, get_jwt_service
from app.services.reset_tokens import ResetTokenCache, get_reset_token_cache
from app.services.sessions import SessionStore, get_session_store
from app.validation import (
    normalize_email,
    validate_country,
    validate_display_name,
    validate_password,
    validate_username,
)

logger = logging.getLogger("brickvault")

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"
RESET_PASSWORD_MESSAGE = "Password reset successfully"
DEFAULT_COUNTRY = "Unknown"

# Column widths of user_sessions; client-supplied values are cut to fit
MAX_USER_AGENT_LENGTH = 512
MAX_IP_ADDRESS_LENGTH = 64
MAX_FINGERPRINT_LENGTH = 256


@dataclass
class ClientMeta:
    """Request metadata recorded on the session."""

    user_agent: str | None = None
    ip_address: str | None = None
    device_fingerprint: str | None = None


@dataclass
class ProfileView:
    """Public view of a user record."""

    id: int
    email: str
    username: str | None
    display_name: str | None
    country: str | None
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None

    @classmethod
    def from_user(cls, user: User) -> "ProfileView":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            display_name=user.display_name,
            country=user.country,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


@dataclass
class AuthResult:
    """Result of a successful registration or login."""

    user: ProfileView
    session_id: str
    session_token: str
    expires_at: datetime
    remember_me: bool


def default_username(email: str) -> str:
    """Derive a valid username from the local part of an email address."""
    local = re.sub(r"[^a-zA-Z0-9_]", "_", email.split("@", 1)[0])[:30]
    return local if len(local) >= 2 else f"{local}_user"


class AuthService:
    """Handles user registration, authentication and password reset."""

    def __init__(
        self,
        credentials: CredentialStore | None = None,
        sessions: SessionStore | None = None,
        reset_tokens: ResetTokenCache | None = None,
        jwt_service: JWTService | None = None,
        email_service: EmailService | None = None,
        *,
        bcrypt_rounds: int | None = None,
        invalidate_sessions_on_reset: bool | None = None,
    ) -> None:
        settings = get_settings()
        self.credentials = credentials or get_credential_store()
        self.sessions = sessions or get_session_store()
        self.reset_tokens = reset_tokens or get_reset_token_cache()
        self.jwt = jwt_service or get_jwt_service()
        self.email = email_service or get_email_service()
        self.bcrypt_rounds = bcrypt_rounds or settings.BCRYPT_ROUNDS
        self.invalidate_sessions_on_reset = (
            settings.INVALIDATE_SESSIONS_ON_RESET
            if invalidate_sessions_on_reset is None
            else invalidate_sessions_on_reset
        )
        self._dummy_hash: str | None = None

    # --- password hashing ---

    def hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def _burn_hash_time(self, password: str) -> None:
        """Spend one bcrypt verification so unknown accounts cost the same as known ones."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash_password("brickvault-timing-equalizer")
        self.verify_password(password, self._dummy_hash)

    # --- registration and login ---

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        *,
        username: str | None = None,
        display_name: str | None = None,
        country: str | None = None,
        client: ClientMeta | None = None,
    ) -> AuthResult:
        """Create an account and open its first session.

        Raises ValidationError for bad input and AlreadyExistsError when the
        email is already registered.
        """
        client = client or ClientMeta()
        email = normalize_email(email)
        validate_password(password)
        username = validate_username(username) if username else default_username(email)
        display_name = validate_display_name(display_name) if display_name else username
        country = validate_country(country) or DEFAULT_COUNTRY

        password_hash = self.hash_password(password)
        try:
            user = self.credentials.create(
                db, email, password_hash, username=username, display_name=display_name, country=country
            )
        except DuplicateKeyError as e:
            logger.warning(
                "SECURITY registration attempt with existing email=%s ip=%s", mask_email(email), client.ip_address
            )
            raise AlreadyExistsError() from e

        session = self._open_session(db, user.id, remember_me=False, client=client)
        logger.info("AUDIT user registered id=%s session=%s", user.id, session.id)
        return self._result(user, session)

    def login(
        self,
        db: Session,
        email: str,
        password: str,
        *,
        remember_me: bool = False,
        client: ClientMeta | None = None,
    ) -> AuthResult:
        """Verify credentials and open a session.

        Unknown email and wrong password raise the same InvalidCredentialsError.
        """
        client = client or ClientMeta()
        email = normalize_email(email)
        if not password:
            raise ValidationError("Password is required", details={"field": "password"})

        user = self.credentials.find_by_email(db, email)
        if user is None:
            self._burn_hash_time(password)
            logger.warning("SECURITY login attempt with unknown email=%s ip=%s", mask_email(email), client.ip_address)
            raise InvalidCredentialsError()

        if not self.verify_password(password, user.password_hash):
            logger.warning("SECURITY login attempt with invalid password user=%s ip=%s", user.id, client.ip_address)
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.warning("SECURITY login attempt on deactivated account user=%s ip=%s", user.id, client.ip_address)
            raise AccountDisabledError()

        user_id = user.id
        best_effort("update last login", self.credentials.update_last_login, db, user_id, db=db, user=user_id)

        session = self._open_session(db, user_id, remember_me=remember_me, client=client)
        logger.info("AUDIT user logged in id=%s remember_me=%s session=%s", user_id, remember_me, session.id)
        return self._result(user, session)

    def logout(self, db: Session, token: str) -> bool:
        return self.sessions.invalidate(db, token)

    def logout_everywhere(self, db: Session, user_id: int) -> int:
        count = self.sessions.invalidate_all_for_user(db, user_id)
        logger.info("AUDIT user logged out everywhere id=%s sessions=%s", user_id, count)
        return count

    # --- password reset ---

    def forgot_password(self, db: Session, email: str, *, defer: Callable[..., Any] | None = None) -> dict:
        """Start a password reset.

        The response is identical whether or not the account exists, and
        delivery problems are never surfaced. Both branches spend the same
        work before returning; token storage and the SMTP round-trip for a
        known account are handed to ``defer`` (FastAPI's
        ``BackgroundTasks.add_task`` in the API) so they never delay the
        answer. Without ``defer`` delivery runs inline.
        """
        email = normalize_email(email)
        response = {"success": True, "message": FORGOT_PASSWORD_MESSAGE}

        user = self.credentials.find_by_email(db, email)
        self._burn_hash_time(email)
        if user is None:
            logger.info("Password reset requested for unknown email=%s", mask_email(email))
            return response

        token = self.jwt.create_reset_token(user.id)
        schedule = defer or (lambda func, *args: func(*args))
        schedule(self._deliver_reset, token, user.id, user.email)
        logger.info("AUDIT password reset requested user=%s", user.id)
        return response

    def _deliver_reset(self, token: str, user_id: int, email: str) -> None:
        best_effort(
            "store reset token",
            lambda: self.reset_tokens.store(token, user_id=user_id, email=email),
            user=user_id,
            token=mask_token(token),
        )
        best_effort("send password reset email", self.email.send_password_reset, email, token, user=user_id)

    def reset_password(self, db: Session, token: str, new_password: str) -> dict:
        """Redeem a reset token and set a new password.

        Guards run in order: signature/expiry/type, then the redemption cache,
        then the user lookup.
        """
        validate_password(new_password, field="new_password")
        if not token:
            raise InvalidTokenError()

        check = self.jwt.verify_reset_token(token)
        if not check.ok:
            logger.warning(
                "SECURITY reset token rejected reason=%s token=%s", check.failure.value, mask_token(token)
            )
            if check.failure is TokenFailure.EXPIRED:
                raise TokenExpiredError()
            raise InvalidTokenError()

        record = self.reset_tokens.get(token)
        if record is None or record.used:
            logger.warning(
                "SECURITY reset token replay or unknown token=%s present=%s", mask_token(token), record is not None
            )
            raise TokenAlreadyUsedError()
        if record.user_id != check.user_id:
            raise InvalidTokenError()

        user = self.credentials.find_by_id(db, check.user_id)
        if user is None:
            raise NotFoundError("User not found")

        user_id = user.id
        self.credentials.update_password(db, user_id, self.hash_password(new_password))
        best_effort("mark reset token used", self.reset_tokens.mark_used, token, token=mask_token(token), user=user_id)

        if self.invalidate_sessions_on_reset:
            self.sessions.invalidate_all_for_user(db, user_id)

        logger.info("AUDIT password reset completed user=%s", user_id)
        return {"success": True, "message": RESET_PASSWORD_MESSAGE}

    # --- profile ---

    def get_profile(self, db: Session, user_id: int) -> ProfileView:
        user = self.credentials.find_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return ProfileView.from_user(user)

    # --- helpers ---

    def _open_session(self, db: Session, user_id: int, *, remember_me: bool, client: ClientMeta) -> UserSession:
        fingerprint = client.device_fingerprint[:MAX_FINGERPRINT_LENGTH] if client.device_fingerprint else None
        return self.sessions.create(
            db,
            user_id=user_id,
            user_agent=(client.user_agent or "Unknown")[:MAX_USER_AGENT_LENGTH],
            ip_address=(client.ip_address or "0.0.0.0")[:MAX_IP_ADDRESS_LENGTH],
            remember_me=remember_me,
            device_fingerprint=fingerprint,
        )

    def _result(self, user: User, session: UserSession) -> AuthResult:
        return AuthResult(
            user=ProfileView.from_user(user),
            session_id=session.id,
            session_token=session.session_token,
            expires_at=session.expires_at,
            remember_me=session.remember_me,
        )


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
