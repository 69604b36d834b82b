"""Pydantic schemas for session management endpoints."""

from datetime import datetime

from pydantic import BaseModel


class SessionResponse(BaseModel):
    id: str
    user_agent: str | None
    ip_address: str | None
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    remember_me: bool
    is_current: bool = False

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class InvalidatedResponse(BaseModel):
    success: bool = True
    message: str
    invalidated: int
