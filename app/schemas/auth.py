"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str
    password: str
    username: str | None = None
    display_name: str | None = None
    country: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str
    remember_me: bool = False
    device_fingerprint: str | None = Field(default=None, max_length=256)


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class UserResponse(BaseModel):
    id: int
    email: str
    username: str | None
    display_name: str | None
    country: str | None
    created_at: datetime
    last_login_at: datetime | None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    user: UserResponse
    session_token: str
    expires_at: datetime
    remember_me: bool


class MessageResponse(BaseModel):
    success: bool = True
    message: str
