"""Session management API endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.errors import NotFoundError, ValidationError
from app.schemas.auth import MessageResponse
from app.schemas.session import InvalidatedResponse, SessionListResponse, SessionResponse
from app.services.sessions import SessionStore, get_session_store

logger = logging.getLogger("brickvault")

router = APIRouter(prefix="/api/v1/sessions", tags=["Sessions"])


@router.get("", response_model=SessionListResponse)
def list_sessions(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> SessionListResponse:
    """List the current user's active sessions, most recently used first."""
    sessions = store.list_active_for_user(db, user.user_id)
    items = []
    for session in sessions:
        item = SessionResponse.model_validate(session)
        item.is_current = session.id == user.session_id
        items.append(item)
    logger.info("User sessions retrieved user=%s count=%s", user.user_id, len(items))
    return SessionListResponse(sessions=items, total=len(items))


@router.delete("/{session_id}", response_model=MessageResponse)
def invalidate_session(
    session_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> MessageResponse:
    """Sign out one of the user's other devices."""
    if session_id == user.session_id:
        raise ValidationError("Cannot invalidate current session. Use logout endpoint instead.")
    if not store.invalidate_by_id(db, user.user_id, session_id):
        raise NotFoundError("Session not found or does not belong to you")
    logger.warning("SECURITY session invalidated by user=%s session=%s", user.user_id, session_id)
    return MessageResponse(message="Session invalidated successfully")


@router.post("/invalidate-all-others", response_model=InvalidatedResponse)
def invalidate_all_other_sessions(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> InvalidatedResponse:
    """Sign out every session except the one making this request."""
    count = store.invalidate_all_for_user(db, user.user_id, except_token=user.session_token)
    logger.warning("SECURITY all other sessions invalidated by user=%s count=%s", user.user_id, count)
    return InvalidatedResponse(message=f"{count} session(s) invalidated successfully", invalidated=count)
