"""Support chat models"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum


class RoomStatus(str, Enum):
    """Chat room lifecycle status"""
    WAITING = "waiting"
    ACTIVE = "active"
    CLOSED = "closed"


OPEN_ROOM_STATUSES = (RoomStatus.WAITING, RoomStatus.ACTIVE)


class RoomPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MessageType(str, Enum):
    """Chat message payload type"""
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class ReadReceipt(BaseModel):
    """A single user's read marker on a message"""
    user_id: str
    read_at: datetime = Field(default_factory=datetime.utcnow)


class FileInfo(BaseModel):
    """Metadata for image and file messages"""
    original_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    file_url: Optional[str] = None


class ChatRoom(BaseModel):
    """Support conversation between one customer and at most one staff member"""
    id: Optional[str] = Field(None, alias="_id")
    customer_id: str
    assigned_staff_id: Optional[str] = None
    status: RoomStatus = RoomStatus.WAITING
    subject: str = "Customer Support"
    priority: RoomPriority = RoomPriority.MEDIUM
    last_message_at: datetime = Field(default_factory=datetime.utcnow)
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    close_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "customer_id": "507f1f77bcf86cd799439011",
                "assigned_staff_id": None,
                "status": "waiting",
                "subject": "Question about my puppy's food",
                "priority": "medium"
            }
        }


class ChatMessage(BaseModel):
    """Message posted in a chat room"""
    id: Optional[str] = Field(None, alias="_id")
    room_id: str
    sender_id: str
    content: str
    message_type: MessageType = MessageType.TEXT
    is_read: bool = False
    read_by: List[ReadReceipt] = []
    file_info: Optional[FileInfo] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

    def is_read_by(self, user_id: str) -> bool:
        return any(receipt.user_id == user_id for receipt in self.read_by)
