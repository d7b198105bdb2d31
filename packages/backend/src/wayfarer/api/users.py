"""Users API — the caller's own profile.

Learn: Both routes work on the account in the access token; there is
no way to address another account here.
- GET /users/me → profile
- PATCH /users/me → rename and/or change password
"""

from fastapi import APIRouter, Depends

from wayfarer.api.errors import ErrorResponse, failure_response
from wayfarer.auth.dependencies import get_current_principal, get_user_service
from wayfarer.auth.principal import Principal
from wayfarer.auth.results import is_failure
from wayfarer.schemas.auth import UserProfile
from wayfarer.schemas.user import UpdateProfileRequest
from wayfarer.services.user_service import UserService

router = APIRouter(prefix="/users")


@router.get("/me", response_model=UserProfile, responses={404: {"model": ErrorResponse}})
async def get_me(
    principal: Principal = Depends(get_current_principal),
    users: UserService = Depends(get_user_service),
):
    result = await users.get_profile(principal.account_id)
    if is_failure(result):
        return failure_response(result)
    return UserProfile.model_validate(result)


@router.patch(
    "/me",
    response_model=UserProfile,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_me(
    body: UpdateProfileRequest,
    principal: Principal = Depends(get_current_principal),
    users: UserService = Depends(get_user_service),
):
    """Update the user name and/or password.

    `newPassword` needs `currentPassword`; a wrong or missing one is
    CurrentPasswordMismatch and nothing is changed.
    """
    result = await users.update_profile(
        principal.account_id,
        user_name=body.user_name,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    if is_failure(result):
        return failure_response(result)
    return UserProfile.model_validate(result)
