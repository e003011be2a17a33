"""Support chat endpoints"""

import logging
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from typing import Optional

from app.api.deps import get_current_user, get_chat_service, get_chat_gateway, require_staff, require_admin
from app.core.errors import ValidationError
from app.models.chat import ChatMessage
from app.models.user import User
from app.realtime.gateway import ChatGateway
from app.schemas.chat_schema import (
    RoomCreate,
    RoomClose,
    MessageCreate,
    ReadReceiptResult,
    GatewayStatus,
)
from app.schemas.common import api_response
from app.services.chat_service import ChatService
from app.utils.validators import validate_object_id

logger = logging.getLogger(__name__)

router = APIRouter()


def ensure_object_id(value: str, label: str) -> str:
    if not validate_object_id(value):
        raise ValidationError(f"Invalid {label} ID")
    return value


async def broadcast(gateway: ChatGateway, message: Optional[ChatMessage]) -> None:
    """Push a message written through REST to connected clients"""
    if message is None:
        return
    try:
        await gateway.broadcast_new_message(message)
    except Exception as e:
        logger.error(f"Failed to broadcast message {message.id}: {str(e)}")


@router.post("/rooms")
async def create_room(
    room_data: Optional[RoomCreate] = None,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    """
    Open a support room, or return the caller's room if one is already open.
    """
    room_data = room_data or RoomCreate()
    room, created = await service.create_or_get_active_room(
        current_user.id,
        current_user.role,
        subject=room_data.subject,
        priority=room_data.priority,
    )

    status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    message = "Chat room created successfully" if created else "Active chat room found"
    return JSONResponse(
        status_code=status_code,
        content=api_response(await service.describe_room(room), message, status_code),
    )


@router.get("/rooms/my")
async def list_my_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    view: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    """
    List the caller's rooms.

    Customers get their own rooms; staff get rooms assigned to them plus waiting
    rooms; `status=pending` and `status=assigned` narrow that down and
    `view=all` (admin only) lists every room.
    """
    data = await service.list_rooms(current_user.id, current_user.role, status_filter, view, page, limit)
    return api_response(data, "Chat rooms retrieved successfully")


@router.get("/rooms/pending")
async def list_pending_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_staff),
    service: ChatService = Depends(get_chat_service)
):
    """Waiting rooms, oldest first"""
    data = await service.list_rooms(current_user.id, current_user.role, "pending", None, page, limit)
    return api_response(data, "Pending chat rooms retrieved successfully")


@router.get("/rooms/assigned")
async def list_assigned_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_staff),
    service: ChatService = Depends(get_chat_service)
):
    data = await service.list_rooms(current_user.id, current_user.role, "assigned", None, page, limit)
    return api_response(data, "Assigned chat rooms retrieved successfully")


@router.get("/rooms/all")
async def list_all_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(require_admin),
    service: ChatService = Depends(get_chat_service)
):
    data = await service.list_rooms(current_user.id, current_user.role, status_filter, "all", page, limit)
    return api_response(data, "Chat rooms retrieved successfully")


@router.get("/messages/{room_id}")
async def get_chat_history(
    room_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    """
    Get a page of room history, oldest message first.
    """
    ensure_object_id(room_id, "room")
    data = await service.get_history(room_id, current_user.id, current_user.role, page, limit)
    return api_response(data, "Chat history retrieved successfully")


@router.post("/messages")
async def send_message(
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    gateway: ChatGateway = Depends(get_chat_gateway)
):
    """
    Send a message through REST. Connected clients receive it as `new_message`.
    """
    ensure_object_id(message_data.room_id, "room")
    await service.get_accessible_room(message_data.room_id, current_user.id, current_user.role)

    message = await service.send_message(
        message_data.room_id,
        current_user.id,
        message_data.content,
        message_data.message_type,
        message_data.file_info,
    )
    await broadcast(gateway, message)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=api_response(
            await service.describe_message(message),
            "Message sent successfully",
            status.HTTP_201_CREATED,
        ),
    )


@router.patch("/messages/{message_id}/read")
async def mark_message_read(
    message_id: str,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    ensure_object_id(message_id, "message")
    added = await service.mark_read(message_id, current_user.id, current_user.role)

    result = ReadReceiptResult(message_id=message_id, already_read=not added)
    message = "Message marked as read" if added else "Message already read"
    return api_response(result, message)


@router.get("/unread-count")
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    data = await service.unread_summary(current_user.id, current_user.role)
    return api_response(data, "Unread count retrieved successfully")


@router.patch("/rooms/{room_id}/assign")
async def assign_room(
    room_id: str,
    current_user: User = Depends(require_staff),
    service: ChatService = Depends(get_chat_service),
    gateway: ChatGateway = Depends(get_chat_gateway)
):
    """
    Claim a waiting room. Assigning a room you already hold is a no-op.
    """
    ensure_object_id(room_id, "room")
    room, system_message = await service.assign_room(
        room_id, current_user.id, current_user.role, current_user.username
    )
    await broadcast(gateway, system_message)

    message = "Chat room assigned successfully" if system_message else "Chat room already assigned to you"
    return api_response(await service.describe_room(room), message)


@router.patch("/rooms/{room_id}/close")
async def close_room(
    room_id: str,
    close_data: Optional[RoomClose] = None,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    gateway: ChatGateway = Depends(get_chat_gateway)
):
    ensure_object_id(room_id, "room")
    reason = close_data.reason if close_data else None

    room, system_message = await service.close_room(room_id, current_user.id, current_user.role, reason)
    await broadcast(gateway, system_message)

    return api_response(await service.describe_room(room), "Chat room closed successfully")


@router.get("/status")
async def get_gateway_status(
    current_user: User = Depends(require_staff),
    gateway: ChatGateway = Depends(get_chat_gateway)
):
    """Realtime gateway statistics"""
    sessions = gateway.sessions
    data = GatewayStatus(
        connections=sessions.connection_count,
        online_users=sessions.online_users_count,
        online_staff=sessions.online_staff_count,
    )
    return api_response(data, "Chat service status")
