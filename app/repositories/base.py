"""Persistence interfaces for the support chat"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional, Protocol

from app.models.chat import ChatMessage, ChatRoom, RoomStatus
from app.models.user import User


@dataclass
class RoomQuery:
    """Storage-agnostic room filter; all set criteria must match"""
    customer_id: Optional[str] = None
    assigned_staff_id: Optional[str] = None
    statuses: Optional[List[RoomStatus]] = None
    # Rooms assigned to this staff member OR still waiting
    visible_to_staff: Optional[str] = None
    oldest_first: bool = False


@dataclass
class MessageInsert:
    """One event from the message store's insert stream; message is None when the document could not be decoded"""
    resume_token: Any
    message: Optional[ChatMessage]


class RoomRepository(Protocol):
    async def insert(self, room: ChatRoom) -> ChatRoom: ...

    async def get(self, room_id: str) -> Optional[ChatRoom]: ...

    async def find_open_for_customer(self, customer_id: str) -> Optional[ChatRoom]: ...

    async def find(self, query: RoomQuery, skip: int = 0, limit: int = 20) -> List[ChatRoom]: ...

    async def count(self, query: RoomQuery) -> int: ...

    async def assign(self, room_id: str, staff_id: str, now: datetime) -> Optional[ChatRoom]:
        """Atomically claim a waiting, unassigned room; None when the condition fails"""
        ...

    async def close(
        self, room_id: str, closed_by: str, reason: Optional[str], now: datetime
    ) -> Optional[ChatRoom]:
        """Atomically close a room that is not closed yet; None when already closed"""
        ...

    async def touch_last_message(self, room_id: str, at: datetime) -> None: ...


class MessageRepository(Protocol):
    async def insert(self, message: ChatMessage) -> ChatMessage: ...

    async def get(self, message_id: str) -> Optional[ChatMessage]: ...

    async def list_in_room(self, room_id: str, skip: int = 0, limit: int = 50) -> List[ChatMessage]:
        """Messages of a room, newest first"""
        ...

    async def count_in_room(self, room_id: str) -> int: ...

    async def last_in_room(self, room_id: str) -> Optional[ChatMessage]: ...

    async def add_read_receipt(
        self, message_id: str, user_id: str, read_at: datetime, mark_read: bool
    ) -> bool:
        """Append a receipt unless the user already has one; True when appended"""
        ...

    async def count_unread(self, room_id: str, user_id: str) -> int: ...

    def watch_inserts(self, resume_after: Any = None) -> AsyncIterator[MessageInsert]: ...


class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> Optional[User]: ...
