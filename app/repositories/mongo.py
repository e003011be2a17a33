"""MongoDB implementations of the chat repositories"""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from app.models.chat import ChatMessage, ChatRoom, RoomStatus, OPEN_ROOM_STATUSES
from app.models.user import User
from app.repositories.base import MessageInsert, RoomQuery
from app.utils.validators import validate_object_id

logger = logging.getLogger(__name__)


def _room_from_doc(doc: dict) -> ChatRoom:
    return ChatRoom(**{**doc, "_id": str(doc["_id"])})


def _message_from_doc(doc: dict) -> ChatMessage:
    return ChatMessage(**{**doc, "_id": str(doc["_id"])})


def _room_filter(query: RoomQuery) -> dict:
    filters = {}

    if query.customer_id:
        filters["customer_id"] = query.customer_id
    if query.assigned_staff_id:
        filters["assigned_staff_id"] = query.assigned_staff_id
    if query.statuses:
        filters["status"] = {"$in": [s.value for s in query.statuses]}
    if query.visible_to_staff:
        filters["$or"] = [
            {"assigned_staff_id": query.visible_to_staff},
            {"status": RoomStatus.WAITING.value},
        ]

    return filters


class MongoRoomRepository:
    """Chat rooms stored in the `chat_rooms` collection"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._collection = db.chat_rooms

    async def insert(self, room: ChatRoom) -> ChatRoom:
        doc = room.model_dump(exclude={"id"})
        result = await self._collection.insert_one(doc)
        return room.model_copy(update={"id": str(result.inserted_id)})

    async def get(self, room_id: str) -> Optional[ChatRoom]:
        if not validate_object_id(room_id):
            return None
        doc = await self._collection.find_one({"_id": ObjectId(room_id)})
        return _room_from_doc(doc) if doc else None

    async def find_open_for_customer(self, customer_id: str) -> Optional[ChatRoom]:
        doc = await self._collection.find_one({
            "customer_id": customer_id,
            "status": {"$in": [s.value for s in OPEN_ROOM_STATUSES]}
        })
        return _room_from_doc(doc) if doc else None

    async def find(self, query: RoomQuery, skip: int = 0, limit: int = 20) -> List[ChatRoom]:
        if query.oldest_first:
            sort = [("created_at", ASCENDING), ("_id", ASCENDING)]
        else:
            sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]

        cursor = self._collection.find(_room_filter(query)).sort(sort).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [_room_from_doc(doc) for doc in docs]

    async def count(self, query: RoomQuery) -> int:
        return await self._collection.count_documents(_room_filter(query))

    async def assign(self, room_id: str, staff_id: str, now: datetime) -> Optional[ChatRoom]:
        if not validate_object_id(room_id):
            return None
        doc = await self._collection.find_one_and_update(
            {
                "_id": ObjectId(room_id),
                "status": RoomStatus.WAITING.value,
                "assigned_staff_id": None,
            },
            {
                "$set": {
                    "assigned_staff_id": staff_id,
                    "status": RoomStatus.ACTIVE.value,
                    "updated_at": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        return _room_from_doc(doc) if doc else None

    async def close(
        self, room_id: str, closed_by: str, reason: Optional[str], now: datetime
    ) -> Optional[ChatRoom]:
        if not validate_object_id(room_id):
            return None
        doc = await self._collection.find_one_and_update(
            {"_id": ObjectId(room_id), "status": {"$ne": RoomStatus.CLOSED.value}},
            {
                "$set": {
                    "status": RoomStatus.CLOSED.value,
                    "closed_at": now,
                    "closed_by": closed_by,
                    "close_reason": reason,
                    "updated_at": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        return _room_from_doc(doc) if doc else None

    async def touch_last_message(self, room_id: str, at: datetime) -> None:
        await self._collection.update_one(
            {"_id": ObjectId(room_id)},
            {"$set": {"last_message_at": at, "updated_at": at}}
        )


class MongoMessageRepository:
    """Chat messages stored in the `chat_messages` collection"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._collection = db.chat_messages

    async def insert(self, message: ChatMessage) -> ChatMessage:
        doc = message.model_dump(exclude={"id"})
        result = await self._collection.insert_one(doc)
        return message.model_copy(update={"id": str(result.inserted_id)})

    async def get(self, message_id: str) -> Optional[ChatMessage]:
        if not validate_object_id(message_id):
            return None
        doc = await self._collection.find_one({"_id": ObjectId(message_id)})
        return _message_from_doc(doc) if doc else None

    async def list_in_room(self, room_id: str, skip: int = 0, limit: int = 50) -> List[ChatMessage]:
        cursor = (
            self._collection.find({"room_id": room_id})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [_message_from_doc(doc) for doc in docs]

    async def count_in_room(self, room_id: str) -> int:
        return await self._collection.count_documents({"room_id": room_id})

    async def last_in_room(self, room_id: str) -> Optional[ChatMessage]:
        doc = await self._collection.find_one(
            {"room_id": room_id},
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        return _message_from_doc(doc) if doc else None

    async def add_read_receipt(
        self, message_id: str, user_id: str, read_at: datetime, mark_read: bool
    ) -> bool:
        update = {
            "$push": {"read_by": {"user_id": user_id, "read_at": read_at}},
            "$set": {"updated_at": read_at},
        }
        if mark_read:
            update["$set"]["is_read"] = True

        # The $ne guard makes the append a no-op for a repeated reader
        result = await self._collection.update_one(
            {"_id": ObjectId(message_id), "read_by.user_id": {"$ne": user_id}},
            update
        )
        return result.modified_count == 1

    async def count_unread(self, room_id: str, user_id: str) -> int:
        return await self._collection.count_documents({
            "room_id": room_id,
            "sender_id": {"$ne": user_id},
            "read_by.user_id": {"$ne": user_id},
        })

    async def watch_inserts(self, resume_after: Any = None) -> AsyncIterator[MessageInsert]:
        """Yield newly inserted messages from a change stream (requires a replica set)"""
        pipeline = [{"$match": {"operationType": "insert"}}]
        async with self._collection.watch(pipeline, resume_after=resume_after) as stream:
            async for change in stream:
                try:
                    message = _message_from_doc(change["fullDocument"])
                except (KeyError, PydanticValidationError) as e:
                    logger.warning(f"Skipping undecodable chat message in change stream: {str(e)}")
                    message = None
                yield MessageInsert(resume_token=change["_id"], message=message)


class MongoUserDirectory:
    """Read-only view of the `users` collection"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._collection = db.users

    async def get_user(self, user_id: str) -> Optional[User]:
        if not user_id or not validate_object_id(user_id):
            return None

        doc = await self._collection.find_one({"_id": ObjectId(user_id)})
        if not doc:
            return None

        try:
            return User(
                _id=str(doc["_id"]),
                email=doc["email"],
                username=doc.get("username") or doc.get("name") or doc["email"],
                avatar_url=doc.get("avatar_url"),
                role=doc.get("role", "customer"),
                active=doc.get("active", True),
            )
        except (KeyError, PydanticValidationError) as e:
            logger.warning(f"Ignoring malformed user record {user_id}: {str(e)}")
            return None
