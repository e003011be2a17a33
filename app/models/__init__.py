"""MongoDB models using Pydantic"""

from app.models.user import User, UserRole, STAFF_ROLES
from app.models.chat import (
    ChatRoom,
    ChatMessage,
    ReadReceipt,
    FileInfo,
    RoomStatus,
    RoomPriority,
    MessageType,
    OPEN_ROOM_STATUSES,
)

__all__ = [
    "User",
    "UserRole",
    "STAFF_ROLES",
    "ChatRoom",
    "ChatMessage",
    "ReadReceipt",
    "FileInfo",
    "RoomStatus",
    "RoomPriority",
    "MessageType",
    "OPEN_ROOM_STATUSES",
]
