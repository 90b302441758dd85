"""Push token and notification preference endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.exceptions import InvalidRequestError, UserNotFoundError
from app.dependencies import (
    CurrentUser,
    get_current_user,
    get_user_repository,
    require_role,
)
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.notification_schema import (
    NotificationSettings,
    NotificationSettingsUpdate,
    PushTokenRequest,
)
from app.schemas.response_schema import (
    ERROR_RESPONSES,
    ApiResponse,
    success_response,
)
from app.services.push_service import is_expo_push_token

router = APIRouter(
    prefix="/api/v1/notifications",
    tags=["notifications"],
    dependencies=[Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]

_SETTING_COLUMNS = {
    "enabled": "notify_enabled",
    "chat_messages": "notify_chat_messages",
    "sound": "notify_sound",
    "vibration": "notify_vibration",
}


async def _load_user(user_repo: UserRepository, user_id: int) -> User:
    user = await user_repo.find_by_id(user_id)
    if user is None:
        raise UserNotFoundError()
    return user


@router.put("/push-token", response_model=ApiResponse[None])
async def register_push_token(
    body: PushTokenRequest, user_repo: UserRepoDep, current_user: CurrentUserDep
) -> dict:
    """Register the caller's device push token."""
    if not is_expo_push_token(body.push_token):
        raise InvalidRequestError(
            message="Invalid Expo push token", code="INVALID_PUSH_TOKEN"
        )
    await _load_user(user_repo, current_user.id)
    await user_repo.set_push_token(current_user.id, body.push_token)
    return success_response(None, message="Push token registered")


@router.delete("/push-token", response_model=ApiResponse[None])
async def remove_push_token(
    user_repo: UserRepoDep, current_user: CurrentUserDep
) -> dict:
    """Stop sending push notifications to the caller's device."""
    await _load_user(user_repo, current_user.id)
    await user_repo.set_push_token(current_user.id, None)
    return success_response(None, message="Push token removed")


@router.get("/settings", response_model=ApiResponse[NotificationSettings])
async def get_settings(user_repo: UserRepoDep, current_user: CurrentUserDep) -> dict:
    """Current notification preferences."""
    user = await _load_user(user_repo, current_user.id)
    return success_response(NotificationSettings.model_validate(user))


@router.patch("/settings", response_model=ApiResponse[NotificationSettings])
async def update_settings(
    body: NotificationSettingsUpdate,
    user_repo: UserRepoDep,
    current_user: CurrentUserDep,
) -> dict:
    """Partially update notification preferences."""
    await _load_user(user_repo, current_user.id)
    values = {
        _SETTING_COLUMNS[name]: value
        for name, value in body.model_dump(exclude_none=True).items()
    }
    await user_repo.update_notification_settings(current_user.id, values)
    user = await _load_user(user_repo, current_user.id)
    return success_response(NotificationSettings.model_validate(user))
