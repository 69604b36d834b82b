"""Session store: durable login sessions keyed by an opaque token."""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, delete, select, update
from sqlalchemy.orm import Session

from app.best_effort import best_effort
from app.clock import utcnow
from app.config import get_settings
from app.errors import store_errors
from app.log import mask_token
from app.models.session import UserSession
from app.models.user import User

logger = logging.getLogger("brickvault")

TOKEN_BYTES = 64  # 512 bits from the OS CSPRNG


@dataclass
class ValidatedSession:
    """Snapshot of a usable session joined with its owner."""

    session_id: str
    session_token: str
    user_id: int
    email: str
    username: str | None
    display_name: str | None
    user_agent: str | None
    ip_address: str | None
    remember_me: bool
    created_at: datetime
    last_activity: datetime
    expires_at: datetime


class SessionStore:
    """Creates, validates, lists, revokes and sweeps login sessions."""

    def __init__(
        self,
        ttl_hours: int | None = None,
        remember_me_ttl_hours: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = get_settings()
        self.ttl_hours = ttl_hours if ttl_hours is not None else settings.SESSION_TTL_HOURS
        self.remember_me_ttl_hours = (
            remember_me_ttl_hours if remember_me_ttl_hours is not None else settings.REMEMBER_ME_TTL_HOURS
        )
        self.clock = clock

    @staticmethod
    def generate_token() -> str:
        return secrets.token_hex(TOKEN_BYTES)

    def lifetime(self, remember_me: bool) -> timedelta:
        return timedelta(hours=self.remember_me_ttl_hours if remember_me else self.ttl_hours)

    def create(
        self,
        db: Session,
        *,
        user_id: int,
        user_agent: str | None = None,
        ip_address: str | None = None,
        remember_me: bool = False,
        device_fingerprint: str | None = None,
    ) -> UserSession:
        """Insert a new active session and return it, token included."""
        now = self.clock()
        session = UserSession(
            session_token=self.generate_token(),
            user_id=user_id,
            user_agent=user_agent,
            ip_address=ip_address,
            device_fingerprint=device_fingerprint,
            remember_me=remember_me,
            created_at=now,
            last_activity=now,
            expires_at=now + self.lifetime(remember_me),
            is_active=True,
        )
        with store_errors(db):
            db.add(session)
            db.commit()
            db.refresh(session)
        logger.info(
            "Session created id=%s user=%s remember_me=%s expires_at=%s",
            session.id,
            user_id,
            remember_me,
            session.expires_at.isoformat(),
        )
        return session

    def validate(self, db: Session, token: str | None) -> ValidatedSession | None:
        """Return the session if usable, else None.

        Usable means active, unexpired, and owned by an active user. A hit
        refreshes ``last_activity``; that write is best-effort.
        """
        if not token:
            return None
        now = self.clock()
        query = (
            select(UserSession, User)
            .join(User, UserSession.user_id == User.id)
            .where(
                UserSession.session_token == token,
                UserSession.is_active.is_(True),
                UserSession.expires_at > now,
                User.is_active.is_(True),
            )
        )
        with store_errors(db):
            row = db.execute(query).first()
        if row is None:
            logger.debug("Session validation failed - not found or expired token=%s", mask_token(token))
            return None

        session, user = row
        result = ValidatedSession(
            session_id=session.id,
            session_token=session.session_token,
            user_id=user.id,
            email=user.email,
            username=user.username,
            display_name=user.display_name,
            user_agent=session.user_agent,
            ip_address=session.ip_address,
            remember_me=session.remember_me,
            created_at=session.created_at,
            last_activity=session.last_activity,
            expires_at=session.expires_at,
        )
        best_effort(
            "refresh session activity",
            self.touch,
            db,
            token,
            db=db,
            token=mask_token(token),
        )
        return result

    def touch(self, db: Session, token: str) -> None:
        """Set last_activity to now for an active session."""
        with store_errors(db):
            db.execute(
                update(UserSession)
                .where(UserSession.session_token == token, UserSession.is_active.is_(True))
                .values(last_activity=self.clock())
            )
            db.commit()

    def invalidate(self, db: Session, token: str) -> bool:
        """Deactivate one session. Returns False if no active row matched."""
        with store_errors(db):
            result = db.execute(
                update(UserSession)
                .where(UserSession.session_token == token, UserSession.is_active.is_(True))
                .values(is_active=False)
            )
            db.commit()
        if result.rowcount:
            logger.info("Session invalidated token=%s", mask_token(token))
            return True
        return False

    def invalidate_by_id(self, db: Session, user_id: int, session_id: str) -> bool:
        """Deactivate a session by id, only if it belongs to ``user_id``."""
        with store_errors(db):
            result = db.execute(
                update(UserSession)
                .where(
                    UserSession.id == session_id,
                    UserSession.user_id == user_id,
                    UserSession.is_active.is_(True),
                )
                .values(is_active=False)
            )
            db.commit()
        if result.rowcount:
            logger.info("Session invalidated id=%s user=%s", session_id, user_id)
            return True
        return False

    def invalidate_all_for_user(self, db: Session, user_id: int, *, except_token: str | None = None) -> int:
        """Deactivate every active session of a user, optionally sparing one."""
        query = update(UserSession).where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
        if except_token is not None:
            query = query.where(UserSession.session_token != except_token)
        with store_errors(db):
            result = db.execute(query.values(is_active=False))
            db.commit()
        logger.info("All user sessions invalidated user=%s count=%s", user_id, result.rowcount)
        return result.rowcount

    def list_active_for_user(self, db: Session, user_id: int) -> list[UserSession]:
        """Active, unexpired sessions of a user, most recent activity first."""
        with store_errors(db):
            return list(
                db.scalars(
                    select(UserSession)
                    .where(
                        UserSession.user_id == user_id,
                        UserSession.is_active.is_(True),
                        UserSession.expires_at > self.clock(),
                    )
                    .order_by(UserSession.last_activity.desc(), UserSession.created_at.desc())
                )
            )

    def cleanup_expired(self, db: Session, *, batch_size: int = 1000) -> int:
        """Delete expired or inactive rows in batches. Returns the number deleted."""
        now = self.clock()
        stale = (UserSession.expires_at <= now) | (UserSession.is_active.is_(False))
        total = 0
        with store_errors(db):
            while True:
                ids = list(db.scalars(select(UserSession.id).where(stale).limit(batch_size)))
                if not ids:
                    break
                db.execute(delete(UserSession).where(UserSession.id.in_(ids)))
                db.commit()
                total += len(ids)
                if len(ids) < batch_size:
                    break
        if total:
            logger.info("Expired sessions cleaned up count=%s", total)
        return total

    def extend_expiry(self, db: Session, token: str, hours: float | None = None) -> None:
        """Push out an active session's expiry; best-effort.

        Without ``hours`` the session's own lifetime applies: the remember-me
        duration or the default one, chosen by a single conditional update.
        """
        now = self.clock()
        if hours is not None:
            new_expiry = now + timedelta(hours=hours)
        else:
            new_expiry = case(
                (UserSession.remember_me.is_(True), now + self.lifetime(True)),
                else_=now + self.lifetime(False),
            )

        def _apply() -> None:
            with store_errors(db):
                db.execute(
                    update(UserSession)
                    .where(UserSession.session_token == token, UserSession.is_active.is_(True))
                    .values(expires_at=new_expiry)
                )
                db.commit()

        if best_effort("extend session expiry", _apply, db=db, token=mask_token(token)):
            logger.debug("Session expiry extended token=%s", mask_token(token))


_session_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Get singleton session store instance."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store
