"""Support chat schemas"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.models.chat import FileInfo, MessageType, ReadReceipt, RoomPriority, RoomStatus
from app.models.user import UserRole


class SenderSummary(BaseModel):
    """Public profile attached to rooms and messages"""
    id: str
    username: str
    avatar_url: Optional[str] = None
    role: UserRole


class RoomCreate(BaseModel):
    """Schema for opening a support room"""
    subject: Optional[str] = None
    priority: RoomPriority = RoomPriority.MEDIUM

    class Config:
        json_schema_extra = {
            "example": {
                "subject": "My kitten's order has not arrived",
                "priority": "high"
            }
        }


class RoomClose(BaseModel):
    """Schema for closing a room"""
    reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "reason": "Issue resolved"
            }
        }


class MessageCreate(BaseModel):
    """Schema for sending a message through the REST API"""
    room_id: str = Field(alias="roomId")
    content: str
    message_type: MessageType = Field(MessageType.TEXT, alias="messageType")
    file_info: Optional[FileInfo] = Field(None, alias="fileInfo")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "roomId": "507f1f77bcf86cd799439011",
                "content": "Hello, is the golden retriever puppy still available?",
                "messageType": "text"
            }
        }


class MessageResponse(BaseModel):
    """Response schema for a chat message"""
    id: str
    room_id: str
    sender_id: str
    sender: Optional[SenderSummary] = None
    content: str
    message_type: MessageType
    is_read: bool
    read_by: List[ReadReceipt] = []
    file_info: Optional[FileInfo] = None
    created_at: datetime


class RoomResponse(BaseModel):
    """Response schema for a chat room"""
    id: str
    customer_id: str
    customer: Optional[SenderSummary] = None
    assigned_staff_id: Optional[str] = None
    assigned_staff: Optional[SenderSummary] = None
    status: RoomStatus
    subject: str
    priority: RoomPriority
    last_message_at: datetime
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_message: Optional[MessageResponse] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class RoomListData(BaseModel):
    rooms: List[RoomResponse]
    pagination: Pagination


class ChatHistoryData(BaseModel):
    room: RoomResponse
    messages: List[MessageResponse]
    unread_count: int
    pagination: Pagination


class RoomUnread(BaseModel):
    room_id: str
    unread_count: int


class UnreadSummary(BaseModel):
    total_unread: int
    rooms_with_unread: List[RoomUnread]


class ReadReceiptResult(BaseModel):
    message_id: str
    already_read: bool


class GatewayStatus(BaseModel):
    """Realtime gateway statistics"""
    status: str = "online"
    connections: int
    online_users: int
    online_staff: int
