"""Persistence adapters for the support chat"""

from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.repositories.base import (
    MessageInsert,
    MessageRepository,
    RoomQuery,
    RoomRepository,
    UserDirectory,
)
from app.repositories.memory import (
    InMemoryMessageRepository,
    InMemoryRoomRepository,
    InMemoryUserDirectory,
)
from app.repositories.mongo import (
    MongoMessageRepository,
    MongoRoomRepository,
    MongoUserDirectory,
)


@dataclass
class ChatRepositories:
    """The three stores the chat layer talks to"""
    rooms: RoomRepository
    messages: MessageRepository
    users: UserDirectory

    @classmethod
    def from_mongo(cls, db: AsyncIOMotorDatabase) -> "ChatRepositories":
        return cls(
            rooms=MongoRoomRepository(db),
            messages=MongoMessageRepository(db),
            users=MongoUserDirectory(db),
        )

    @classmethod
    def in_memory(cls) -> "ChatRepositories":
        return cls(
            rooms=InMemoryRoomRepository(),
            messages=InMemoryMessageRepository(),
            users=InMemoryUserDirectory(),
        )


__all__ = [
    "ChatRepositories",
    "MessageInsert",
    "MessageRepository",
    "RoomQuery",
    "RoomRepository",
    "UserDirectory",
    "InMemoryMessageRepository",
    "InMemoryRoomRepository",
    "InMemoryUserDirectory",
    "MongoMessageRepository",
    "MongoRoomRepository",
    "MongoUserDirectory",
]
