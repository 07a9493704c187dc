"""
API v1 notification routes and the real-time relay.

- GET /v1/notifications - Newest first
- GET /v1/notifications/unread-count
- PUT /v1/notifications/read-all
- PUT /v1/notifications/{notification_id}/read
- WS  /v1/ws - Live notification relay

Relay protocol: the client sends {"type": "register", "userId": "<id>"}
once connected; the server then pushes {"type": "notification", "data": ...}
frames. Re-registering the same user on another socket replaces the
previous one.
"""

import json
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from src.api.dependencies import (
    get_connection_registry,
    get_current_account,
    get_notification_service,
)
from src.api.models import (
    ErrorResponse,
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from src.domain.connections import ConnectionRegistry
from src.domain.models import Account
from src.domain.notifications import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])


@router.get(
    "/notifications",
    response_model=list[NotificationResponse],
    summary="List notifications",
)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    account: Account = Depends(get_current_account),
    service: NotificationService = Depends(get_notification_service),
) -> list[NotificationResponse]:
    notifications = await service.list_for_user(account.id, limit)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get(
    "/notifications/unread-count",
    response_model=UnreadCountResponse,
    summary="Count unread notifications",
)
async def unread_count(
    account: Account = Depends(get_current_account),
    service: NotificationService = Depends(get_notification_service),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await service.unread_count(account.id))


@router.put(
    "/notifications/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all notifications read",
)
async def mark_all_read(
    account: Account = Depends(get_current_account),
    service: NotificationService = Depends(get_notification_service),
) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=await service.mark_all_read(account.id))


@router.put(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not authorized"},
        404: {"model": ErrorResponse, "description": "Notification not found"},
    },
    summary="Mark a notification read",
)
async def mark_read(
    notification_id: str,
    account: Account = Depends(get_current_account),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    notification = await service.mark_read(notification_id, account.id)
    return NotificationResponse.model_validate(notification)


@router.websocket("/ws")
async def relay(
    websocket: WebSocket,
    registry: ConnectionRegistry = Depends(get_connection_registry),
) -> None:
    """Hold a live connection and bind it to a user on the register message."""
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed relay message")
                continue

            if not isinstance(message, dict) or message.get("type") != "register":
                continue
            user_id = message.get("userId")
            if not user_id:
                continue

            registry.register(str(user_id), websocket)
            await websocket.send_json({"type": "registered", "userId": str(user_id)})
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(websocket)
