"""Authentication dependencies for FastAPI routes."""

from dataclasses import dataclass
from datetime import datetime

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.config import get_settings
from app.database import get_db
from app.errors import NotAuthenticatedError
from app.services.auth import ClientMeta
from app.services.sessions import SessionStore, get_session_store

SESSION_COOKIE_NAME = "bv_session"


@dataclass
class CurrentUser:
    """Authenticated user context."""

    user_id: int
    email: str
    username: str | None
    display_name: str | None
    session_id: str
    session_token: str


def extract_session_token(request: Request) -> str | None:
    """Bearer header first, then the session cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE_NAME)


def client_meta(request: Request, device_fingerprint: str | None = None) -> ClientMeta:
    """Collect user agent and client IP for session bookkeeping."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return ClientMeta(
        user_agent=request.headers.get("User-Agent"),
        ip_address=ip_address,
        device_fingerprint=device_fingerprint,
    )


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> CurrentUser:
    """Validate the presented session token. Raises 401 if missing or unusable."""
    token = extract_session_token(request)
    if not token:
        raise NotAuthenticatedError()

    session = store.validate(db, token)
    if session is None:
        raise NotAuthenticatedError("Invalid or expired session")

    return CurrentUser(
        user_id=session.user_id,
        email=session.email,
        username=session.username,
        display_name=session.display_name,
        session_id=session.session_id,
        session_token=session.session_token,
    )


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    """Set the httpOnly session cookie, aligned with the session's expiry."""
    max_age = max(0, int((expires_at - utcnow()).total_seconds()))
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=get_settings().is_production,
        max_age=max_age,
    )


def clear_session_cookie(response: Response) -> None:
    """Clear the session cookie."""
    response.delete_cookie(key=SESSION_COOKIE_NAME)
