"""Chat room API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_async_session
from app.core.rate_limit import limiter
from app.dependencies import (
    CurrentUser,
    get_chat_gateway,
    get_cleanup_service,
    get_current_user,
    get_message_store,
    get_room_registry,
    require_role,
)
from app.schemas.chat_room_schema import (
    ChatRoomListResponse,
    ChatRoomSummary,
    CheckRoomResponse,
    CleanupReport,
    CleanupStatsResponse,
    CreateRoomRequest,
    CreateRoomResponse,
    ExpireListingResponse,
    RoomStatsResponse,
)
from app.schemas.message_schema import RoomHistory
from app.schemas.response_schema import (
    ERROR_RESPONSES,
    ApiResponse,
    success_response,
)
from app.services.chat_gateway import ChatGateway
from app.services.cleanup_service import CleanupService
from app.services.message_store import MessageStore
from app.services.room_registry import RoomRegistry

router = APIRouter(
    prefix="/api/v1/chat-rooms",
    tags=["chat-rooms"],
    dependencies=[Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

RegistryDep = Annotated[RoomRegistry, Depends(get_room_registry)]
MessageStoreDep = Annotated[MessageStore, Depends(get_message_store)]
CleanupServiceDep = Annotated[CleanupService, Depends(get_cleanup_service)]
GatewayDep = Annotated[ChatGateway, Depends(get_chat_gateway)]
SessionDep = Annotated[AsyncSession, Depends(get_async_session)]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
AdminOnly = Depends(require_role("admin"))
# One budget across every participant route, on top of the creation limit
room_request_limit = limiter.shared_limit(
    settings.auth.room_request_rate_limit, scope="chat-rooms"
)


@router.get("", response_model=ApiResponse[ChatRoomListResponse])
@room_request_limit
async def list_rooms(
    request: Request,
    registry: RegistryDep,
    current_user: CurrentUserDep,
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    """List the current user's rooms, most recently active first."""
    result = await registry.list_rooms_for_user(
        current_user.id, limit=limit, cursor=cursor
    )
    return success_response(result)


@router.get("/check", response_model=ApiResponse[CheckRoomResponse])
@room_request_limit
async def check_room(
    request: Request,
    registry: RegistryDep,
    current_user: CurrentUserDep,
    listing_id: int = Query(..., ge=1),
) -> dict:
    """Check whether the caller already has an open room for a listing."""
    room = await registry.check_room(listing_id, current_user.id)
    if room is None:
        return success_response(CheckRoomResponse(exists=False))
    return success_response(
        CheckRoomResponse(
            exists=True,
            room_id=room.id,
            status=room.status,  # type: ignore[arg-type]
            has_messages=room.has_messages,
        )
    )


@router.post("", response_model=ApiResponse[CreateRoomResponse])
@room_request_limit
@limiter.limit(settings.auth.create_room_rate_limit)
async def create_room(
    request: Request,
    response: Response,
    body: CreateRoomRequest,
    registry: RegistryDep,
    current_user: CurrentUserDep,
) -> dict:
    """Open the inquiry room for a listing, reusing an open one."""
    room, is_new = await registry.find_or_create_room(
        listing_id=body.listing_id,
        owner_id=body.owner_id,
        inquirer_id=current_user.id,
        display_name=body.listing_title or f"Listing #{body.listing_id}",
    )
    if is_new:
        response.status_code = status.HTTP_201_CREATED
    return success_response(
        CreateRoomResponse(
            room_id=room.id,
            is_new=is_new,
            status=room.status,  # type: ignore[arg-type]
            has_messages=room.has_messages,
        ),
        status=response.status_code or status.HTTP_200_OK,
        message="Chat room created" if is_new else "Chat room already exists",
    )


@router.get("/stats", response_model=ApiResponse[RoomStatsResponse])
@room_request_limit
async def room_stats(
    request: Request, registry: RegistryDep, current_user: CurrentUserDep
) -> dict:
    """Room counts for the current user."""
    return success_response(await registry.room_stats(current_user.id))


# --- Admin ---


@router.post(
    "/admin/cleanup",
    response_model=ApiResponse[CleanupReport],
    dependencies=[AdminOnly],
)
async def run_cleanup(service: CleanupServiceDep) -> dict:
    """Sweep abandoned pending rooms and purge expired soft-deleted rooms."""
    return success_response(await service.run())


@router.get(
    "/admin/cleanup/stats",
    response_model=ApiResponse[CleanupStatsResponse],
    dependencies=[AdminOnly],
)
async def cleanup_stats(service: CleanupServiceDep) -> dict:
    """Rooms currently eligible for cleanup."""
    return success_response(await service.cleanup_stats())


@router.post(
    "/admin/listings/{listing_id}/expire",
    response_model=ApiResponse[ExpireListingResponse],
    dependencies=[AdminOnly],
)
async def expire_listing_rooms(
    listing_id: int,
    service: CleanupServiceDep,
    session: SessionDep,
    gateway: GatewayDep,
) -> dict:
    """Expire every room of a deleted listing."""
    result, room_ids = await service.expire_rooms_for_listing(listing_id)
    await session.commit()
    for room_id in room_ids:
        await gateway.broadcast_room_closed(room_id, "expired")
    return success_response(result)


# --- Single room ---


@router.get("/{room_id}", response_model=ApiResponse[ChatRoomSummary])
@room_request_limit
async def get_room(
    request: Request,
    room_id: str,
    registry: RegistryDep,
    current_user: CurrentUserDep,
) -> dict:
    """Fetch one room the caller takes part in."""
    room = await registry.get_room_for_participant(room_id, current_user.id)
    return success_response(RoomRegistry.summarize(room, current_user.id))


@router.get("/{room_id}/messages", response_model=ApiResponse[RoomHistory])
@room_request_limit
async def get_room_messages(
    request: Request,
    room_id: str,
    registry: RegistryDep,
    store: MessageStoreDep,
    current_user: CurrentUserDep,
) -> dict:
    """Full ordered message log of a room with its conversation state."""
    room = await registry.get_room_for_participant(room_id, current_user.id)
    return success_response(await store.history(room.id))


@router.patch("/{room_id}/cancel", response_model=ApiResponse[ChatRoomSummary])
@room_request_limit
async def cancel_room(
    request: Request,
    room_id: str,
    registry: RegistryDep,
    session: SessionDep,
    gateway: GatewayDep,
    current_user: CurrentUserDep,
) -> dict:
    """Cancel a room. Its participants may open a new one afterwards."""
    room = await registry.cancel(room_id, current_user.id)
    await session.commit()
    await gateway.broadcast_room_closed(room.id, room.status)
    return success_response(
        RoomRegistry.summarize(room, current_user.id), message="Chat room cancelled"
    )
