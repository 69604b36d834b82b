"""Pydantic schemas for profile endpoints."""

from pydantic import BaseModel


class UpdateProfileRequest(BaseModel):
    username: str
    display_name: str
    country: str | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
