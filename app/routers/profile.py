"""Profile API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.schemas.auth import MessageResponse, UserResponse
from app.schemas.profile import ChangePasswordRequest, UpdateProfileRequest
from app.services.profile import ProfileService, get_profile_service

router = APIRouter(prefix="/api/v1/profile", tags=["Profile"])


@router.get("", response_model=UserResponse)
def get_profile(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> UserResponse:
    """Get the current user's profile."""
    return UserResponse.model_validate(service.auth.get_profile(db, user.user_id))


@router.put("", response_model=UserResponse)
def update_profile(
    body: UpdateProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> UserResponse:
    """Update username, display name and country."""
    profile = service.update_profile(
        db, user.user_id, username=body.username, display_name=body.display_name, country=body.country
    )
    return UserResponse.model_validate(profile)


@router.post("/password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> MessageResponse:
    """Change the password; every other session is signed out."""
    revoked = service.change_password(
        db,
        user.user_id,
        body.current_password,
        body.new_password,
        current_session_token=user.session_token,
    )
    return MessageResponse(message=f"Password changed. {revoked} other session(s) signed out")
