"""Profile management for signed-in users."""

import logging

from sqlalchemy.orm import Session

from app.errors import AlreadyExistsError, InvalidCredentialsError, NotFoundError
from app.services.auth import AuthService, ProfileView, get_auth_service
from app.validation import validate_country, validate_display_name, validate_password, validate_username

logger = logging.getLogger("brickvault")


class ProfileService:
    """Handles profile edits and password changes."""

    def __init__(self, auth: AuthService | None = None) -> None:
        self.auth = auth or get_auth_service()

    def update_profile(
        self,
        db: Session,
        user_id: int,
        *,
        username: str,
        display_name: str,
        country: str | None = None,
    ) -> ProfileView:
        """Replace the user's username, display name and country."""
        username = validate_username(username)
        display_name = validate_display_name(display_name)
        country = validate_country(country)

        existing = self.auth.credentials.find_by_username(db, username)
        if existing is not None and existing.id != user_id:
            raise AlreadyExistsError("Username already taken")

        user = self.auth.credentials.update_profile(
            db, user_id, username=username, display_name=display_name, country=country
        )
        logger.info("AUDIT profile updated user=%s", user_id)
        return ProfileView.from_user(user)

    def change_password(
        self,
        db: Session,
        user_id: int,
        current_password: str,
        new_password: str,
        *,
        current_session_token: str | None = None,
    ) -> int:
        """Change the password and sign out every other session. Returns sessions revoked."""
        validate_password(new_password, field="new_password")
        user = self.auth.credentials.find_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not self.auth.verify_password(current_password or "", user.password_hash):
            logger.warning("SECURITY password change with wrong current password user=%s", user_id)
            raise InvalidCredentialsError("Current password is incorrect")

        self.auth.credentials.update_password(db, user_id, self.auth.hash_password(new_password))
        revoked = self.auth.sessions.invalidate_all_for_user(db, user_id, except_token=current_session_token)
        logger.info("AUDIT password changed user=%s other_sessions_revoked=%s", user_id, revoked)
        return revoked


_profile_service: ProfileService | None = None


def get_profile_service() -> ProfileService:
    """Get singleton profile service instance."""
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service
