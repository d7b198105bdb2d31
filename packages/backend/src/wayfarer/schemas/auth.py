"""Pydantic schemas for the auth endpoints.

Learn: Field limits here are the first line of validation. A body that
fails them never reaches AuthService and comes back as a 400
ValidationError with per-field messages.
"""

import uuid
from datetime import datetime
from typing import Annotated

from pydantic import EmailStr, Field, StringConstraints

from wayfarer.schemas.base import CamelModel

PASSWORD_MIN = 8
PASSWORD_MAX = 128

# Stripped before the length check, so "   " is rejected.
UserName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)
]


# ─── Requests ───────────────────────────────────────────

class RegisterRequest(CamelModel):
    user_name: UserName
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)


# ─── Responses ──────────────────────────────────────────

class RegisterResponse(CamelModel):
    id: uuid.UUID
    user_name: str
    email: str
    created_at: datetime


class UserProfile(CamelModel):
    id: uuid.UUID
    user_name: str
    email: str
    created_at: datetime
    roles: list[str]


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


class LoginResponse(TokenResponse):
    user: UserProfile


class MessageResponse(CamelModel):
    message: str
