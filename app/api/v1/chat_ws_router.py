"""WebSocket endpoint for real-time chat."""

import uuid

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.core import redis as redis_state
from app.core.exceptions import AppException
from app.dependencies import get_chat_gateway
from app.schemas.auth_schema import TokenPayload
from app.services.chat_gateway import ChatGateway, ConnectionContext
from app.services.token_service import TokenService

logger = structlog.get_logger()

router = APIRouter(tags=["chat-ws"])

WS_CLOSE_UNAUTHORIZED = 4401


def _extract_token(websocket: WebSocket) -> str | None:
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return websocket.query_params.get("token")


async def authenticate_websocket(websocket: WebSocket) -> TokenPayload | None:
    """Resolve the connecting user, or None when the token is missing or bad."""
    token = _extract_token(websocket)
    if not token:
        return None
    try:
        return await TokenService(redis_state.redis_client).authenticate(token)
    except AppException as exc:
        logger.info("Rejected websocket token", code=exc.code)
        return None


@router.websocket("/ws/chat")
async def chat_websocket(
    websocket: WebSocket,
    gateway: ChatGateway = Depends(get_chat_gateway),
) -> None:
    """Authenticated duplex channel carrying chat events."""
    payload = await authenticate_websocket(websocket)
    if payload is None:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    ctx = ConnectionContext(connection_id=str(uuid.uuid4()), user_id=payload.user_id)
    await gateway.connect(ctx, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await gateway.handle(ctx, raw)
    except WebSocketDisconnect as exc:
        logger.debug(
            "Websocket closed by client",
            connection_id=ctx.connection_id,
            close_code=exc.code,
        )
    finally:
        await gateway.disconnect(ctx)
