"""In-memory chat repositories

Used by the test-suite and for running the API without a MongoDB server.
Every read returns a copy so callers never mutate stored records.
"""

import asyncio
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from bson import ObjectId

from app.models.chat import ChatMessage, ChatRoom, ReadReceipt, RoomStatus, OPEN_ROOM_STATUSES
from app.models.user import User
from app.repositories.base import MessageInsert, RoomQuery


def _matches(room: ChatRoom, query: RoomQuery) -> bool:
    if query.customer_id and room.customer_id != query.customer_id:
        return False
    if query.assigned_staff_id and room.assigned_staff_id != query.assigned_staff_id:
        return False
    if query.statuses and room.status not in query.statuses:
        return False
    if query.visible_to_staff:
        if room.assigned_staff_id != query.visible_to_staff and room.status != RoomStatus.WAITING:
            return False
    return True


class InMemoryRoomRepository:
    def __init__(self) -> None:
        self._rooms: Dict[str, ChatRoom] = {}
        self._order: List[str] = []

    async def insert(self, room: ChatRoom) -> ChatRoom:
        stored = room.model_copy(update={"id": str(ObjectId())}, deep=True)
        self._rooms[stored.id] = stored
        self._order.append(stored.id)
        return stored.model_copy(deep=True)

    async def get(self, room_id: str) -> Optional[ChatRoom]:
        room = self._rooms.get(room_id)
        return room.model_copy(deep=True) if room else None

    async def find_open_for_customer(self, customer_id: str) -> Optional[ChatRoom]:
        for room_id in self._order:
            room = self._rooms[room_id]
            if room.customer_id == customer_id and room.status in OPEN_ROOM_STATUSES:
                return room.model_copy(deep=True)
        return None

    async def find(self, query: RoomQuery, skip: int = 0, limit: int = 20) -> List[ChatRoom]:
        indexed = [
            (position, self._rooms[room_id])
            for position, room_id in enumerate(self._order)
            if _matches(self._rooms[room_id], query)
        ]
        if query.oldest_first:
            indexed.sort(key=lambda item: (item[1].created_at, item[0]))
        else:
            indexed.sort(key=lambda item: (item[1].last_message_at, item[0]), reverse=True)
        return [room.model_copy(deep=True) for _, room in indexed[skip:skip + limit]]

    async def count(self, query: RoomQuery) -> int:
        return sum(1 for room in self._rooms.values() if _matches(room, query))

    async def assign(self, room_id: str, staff_id: str, now: datetime) -> Optional[ChatRoom]:
        room = self._rooms.get(room_id)
        if not room or room.status != RoomStatus.WAITING or room.assigned_staff_id is not None:
            return None
        room.assigned_staff_id = staff_id
        room.status = RoomStatus.ACTIVE
        room.updated_at = now
        return room.model_copy(deep=True)

    async def close(
        self, room_id: str, closed_by: str, reason: Optional[str], now: datetime
    ) -> Optional[ChatRoom]:
        room = self._rooms.get(room_id)
        if not room or room.status == RoomStatus.CLOSED:
            return None
        room.status = RoomStatus.CLOSED
        room.closed_at = now
        room.closed_by = closed_by
        room.close_reason = reason
        room.updated_at = now
        return room.model_copy(deep=True)

    async def touch_last_message(self, room_id: str, at: datetime) -> None:
        room = self._rooms.get(room_id)
        if room:
            room.last_message_at = at
            room.updated_at = at


class InMemoryMessageRepository:
    def __init__(self) -> None:
        self._messages: Dict[str, ChatMessage] = {}
        self._order: List[str] = []
        self._subscribers: List[asyncio.Queue] = []

    async def insert(self, message: ChatMessage) -> ChatMessage:
        stored = message.model_copy(update={"id": str(ObjectId())}, deep=True)
        self._messages[stored.id] = stored
        self._order.append(stored.id)

        event = MessageInsert(resume_token=len(self._order), message=stored.model_copy(deep=True))
        for queue in self._subscribers:
            queue.put_nowait(event)

        return stored.model_copy(deep=True)

    async def get(self, message_id: str) -> Optional[ChatMessage]:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    def _room_messages(self, room_id: str) -> List[ChatMessage]:
        return [
            self._messages[message_id]
            for message_id in self._order
            if self._messages[message_id].room_id == room_id
        ]

    async def list_in_room(self, room_id: str, skip: int = 0, limit: int = 50) -> List[ChatMessage]:
        newest_first = list(reversed(self._room_messages(room_id)))
        return [m.model_copy(deep=True) for m in newest_first[skip:skip + limit]]

    async def count_in_room(self, room_id: str) -> int:
        return len(self._room_messages(room_id))

    async def last_in_room(self, room_id: str) -> Optional[ChatMessage]:
        messages = self._room_messages(room_id)
        return messages[-1].model_copy(deep=True) if messages else None

    async def add_read_receipt(
        self, message_id: str, user_id: str, read_at: datetime, mark_read: bool
    ) -> bool:
        message = self._messages.get(message_id)
        if not message or message.is_read_by(user_id):
            return False
        message.read_by.append(ReadReceipt(user_id=user_id, read_at=read_at))
        message.updated_at = read_at
        if mark_read:
            message.is_read = True
        return True

    async def count_unread(self, room_id: str, user_id: str) -> int:
        return sum(
            1 for m in self._room_messages(room_id)
            if m.sender_id != user_id and not m.is_read_by(user_id)
        )

    async def watch_inserts(self, resume_after: Any = None) -> AsyncIterator[MessageInsert]:
        queue: asyncio.Queue = asyncio.Queue()

        if resume_after is not None:
            for position, message_id in enumerate(self._order[resume_after:], start=resume_after + 1):
                queue.put_nowait(MessageInsert(
                    resume_token=position,
                    message=self._messages[message_id].model_copy(deep=True),
                ))

        self._subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)


class InMemoryUserDirectory:
    def __init__(self, users: Optional[List[User]] = None) -> None:
        self._users: Dict[str, User] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: User) -> User:
        if not user.id:
            user = user.model_copy(update={"id": str(ObjectId())})
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)
