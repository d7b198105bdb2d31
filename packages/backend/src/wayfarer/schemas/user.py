"""Pydantic schemas for the profile endpoints."""

from typing import Optional

from pydantic import Field

from wayfarer.schemas.auth import PASSWORD_MAX, PASSWORD_MIN, UserName
from wayfarer.schemas.base import CamelModel


class UpdateProfileRequest(CamelModel):
    """All fields optional; `currentPassword` is required with `newPassword`."""
    user_name: Optional[UserName] = None
    current_password: Optional[str] = Field(None, max_length=PASSWORD_MAX)
    new_password: Optional[str] = Field(
        None, min_length=PASSWORD_MIN, max_length=PASSWORD_MAX
    )
