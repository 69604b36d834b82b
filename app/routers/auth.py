"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    CurrentUser,
    clear_session_cookie,
    client_meta,
    get_current_user,
    set_session_cookie,
)
from app.rate_limit import limiter
from app.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from app.services.auth import AuthResult, AuthService, get_auth_service

logger = logging.getLogger("brickvault")

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.model_validate(result.user),
        session_token=result.session_token,
        expires_at=result.expires_at,
        remember_me=result.remember_me,
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
@limiter.limit("5/minute")
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register a new user account and sign it in."""
    result = auth.register(
        db,
        body.email,
        body.password,
        username=body.username,
        display_name=body.display_name,
        country=body.country,
        client=client_meta(request),
    )
    set_session_cookie(response, result.session_token, result.expires_at)
    return _auth_response(result)


@router.post("/login", response_model=AuthResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate and open a session."""
    result = auth.login(
        db,
        body.email,
        body.password,
        remember_me=body.remember_me,
        client=client_meta(request, body.device_fingerprint),
    )
    set_session_cookie(response, result.session_token, result.expires_at)
    return _auth_response(result)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Invalidate the current session."""
    auth.logout(db, user.session_token)
    clear_session_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Invalidate every session of the current user, this one included."""
    count = auth.logout_everywhere(db, user.user_id)
    clear_session_cookie(response)
    return MessageResponse(message=f"{count} session(s) invalidated")


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Request a password reset link. The answer never reveals whether the account exists."""
    return MessageResponse(**auth.forgot_password(db, body.email, defer=background_tasks.add_task))


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password using a reset token."""
    return MessageResponse(**auth.reset_password(db, body.token, body.new_password))


@router.get("/me", response_model=UserResponse)
def me(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Return the signed-in user's profile."""
    return UserResponse.model_validate(auth.get_profile(db, user.user_id))
