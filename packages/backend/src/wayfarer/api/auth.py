"""Auth API — registration, login, token rotation, password reset.

Learn: Routes for the credential lifecycle:
- POST /auth/register → create an account (no tokens; log in separately)
- POST /auth/login → email/password → access + refresh tokens
- POST /auth/refresh → rotate the refresh token, get a new pair
- POST /auth/logout → revoke the refresh token (always 200)
- POST /auth/forgot-password → email a reset link (always 200)
- POST /auth/reset-password → reset token + new password

Handlers are thin: call the service, map a Failure to the envelope.
"""

from fastapi import APIRouter, Depends

from wayfarer.api.errors import ErrorResponse, failure_response
from wayfarer.auth.dependencies import get_auth_service
from wayfarer.auth.results import is_failure
from wayfarer.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    UserProfile,
)
from wayfarer.services.auth_service import AuthService

router = APIRouter(prefix="/auth")

_errors = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# ─── Register ────────────────────────────────────────────


@router.post(
    "/register", response_model=RegisterResponse, status_code=201, responses=_errors
)
async def register(
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Create a new account with the default role."""
    result = await auth.register(body.user_name, body.email, body.password)
    if is_failure(result):
        return failure_response(result)
    return RegisterResponse.model_validate(result)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=LoginResponse, responses=_errors)
async def login(
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Login with email and password → JWT tokens."""
    result = await auth.login(body.email, body.password)
    if is_failure(result):
        return failure_response(result)
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        user=UserProfile.model_validate(result.user),
    )


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse, responses=_errors)
async def refresh(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a new access + refresh pair."""
    result = await auth.refresh(body.refresh_token)
    if is_failure(result):
        return failure_response(result)
    return TokenResponse.model_validate(result)


# ─── Logout ─────────────────────────────────────────────


@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: LogoutRequest,
    auth: AuthService = Depends(get_auth_service),
):
    return MessageResponse(message=await auth.logout(body.refresh_token))


# ─── Password reset ─────────────────────────────────────


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Same response whether or not the email is registered."""
    return MessageResponse(message=await auth.forgot_password(body.email))


@router.post("/reset-password", response_model=MessageResponse, responses=_errors)
async def reset_password(
    body: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    result = await auth.reset_password(body.token, body.new_password)
    if is_failure(result):
        return failure_response(result)
    return MessageResponse(message=result)
