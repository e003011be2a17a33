"""Pydantic schemas for request/response validation"""

from app.schemas.common import ApiResponse, api_response
from app.schemas.auth import UserProfileResponse
from app.schemas.chat_schema import (
    SenderSummary,
    RoomCreate,
    RoomClose,
    MessageCreate,
    MessageResponse,
    RoomResponse,
    Pagination,
    RoomListData,
    ChatHistoryData,
    RoomUnread,
    UnreadSummary,
    ReadReceiptResult,
    GatewayStatus,
)

__all__ = [
    "ApiResponse",
    "api_response",
    "UserProfileResponse",
    "SenderSummary",
    "RoomCreate",
    "RoomClose",
    "MessageCreate",
    "MessageResponse",
    "RoomResponse",
    "Pagination",
    "RoomListData",
    "ChatHistoryData",
    "RoomUnread",
    "UnreadSummary",
    "ReadReceiptResult",
    "GatewayStatus",
]
