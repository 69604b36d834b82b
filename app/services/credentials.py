"""Credential store: persistence of user identity and password hashes."""

import logging

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.errors import NotFoundError, store_errors
from app.log import mask_email
from app.models.user import User

logger = logging.getLogger("brickvault")


class CredentialStore:
    """CRUD over the users table. Plaintext passwords never reach this class."""

    def create(
        self,
        db: Session,
        email: str,
        password_hash: str,
        *,
        username: str | None = None,
        display_name: str | None = None,
        country: str | None = None,
    ) -> User:
        """Insert a user. Raises DuplicateKeyError if the email is taken.

        The unique index on ``users.email`` is the only duplicate check.
        """
        user = User(
            email=email.strip().lower(),
            password_hash=password_hash,
            username=username,
            display_name=display_name or username,
            country=country,
            is_active=True,
        )
        with store_errors(db):
            db.add(user)
            db.commit()
            db.refresh(user)
        logger.info("User created id=%s email=%s", user.id, mask_email(user.email))
        return user

    def find_by_email(self, db: Session, email: str) -> User | None:
        with store_errors(db):
            return db.scalars(select(User).where(User.email == email.strip().lower())).first()

    def find_by_id(self, db: Session, user_id: int) -> User | None:
        with store_errors(db):
            return db.get(User, user_id)

    def find_by_username(self, db: Session, username: str) -> User | None:
        with store_errors(db):
            return db.scalars(select(User).where(User.username == username)).first()

    def update_password(self, db: Session, user_id: int, new_hash: str) -> None:
        with store_errors(db):
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.password_hash = new_hash
            user.updated_at = utcnow()
            db.commit()
        logger.info("Password updated for user id=%s", user_id)

    def update_profile(
        self,
        db: Session,
        user_id: int,
        *,
        username: str | None,
        display_name: str | None,
        country: str | None,
    ) -> User:
        """Overwrite the editable profile fields. Raises NotFoundError if absent."""
        with store_errors(db):
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.username = username
            user.display_name = display_name
            user.country = country
            user.updated_at = utcnow()
            db.commit()
            db.refresh(user)
        return user

    def update_last_login(self, db: Session, user_id: int) -> None:
        with store_errors(db):
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.last_login_at = utcnow()
            db.commit()

    def set_active(self, db: Session, user_id: int, active: bool) -> bool:
        """Soft-(de)activate an account. Returns False if the user does not exist."""
        with store_errors(db):
            user = db.get(User, user_id)
            if user is None:
                return False
            user.is_active = active
            user.updated_at = utcnow()
            db.commit()
        logger.info("User id=%s active=%s", user_id, active)
        return True

    def delete(self, db: Session, user_id: int) -> bool:
        """Hard-delete a user; the database cascades to their sessions."""
        with store_errors(db):
            user = db.get(User, user_id)
            if user is None:
                return False
            db.delete(user)
            db.commit()
        logger.info("User deleted id=%s", user_id)
        return True

    def ping(self, db: Session) -> bool:
        """Round-trip a trivial query."""
        with store_errors(db):
            db.execute(text("SELECT 1"))
        return True


_credential_store: CredentialStore | None = None


def get_credential_store() -> CredentialStore:
    """Get singleton credential store instance."""
    global _credential_store
    if _credential_store is None:
        _credential_store = CredentialStore()
    return _credential_store
