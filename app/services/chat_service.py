"""Support chat business logic

ChatService is the only writer of chat rooms and chat messages. Both the REST
routes and the realtime gateway go through it.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.chat import (
    ChatMessage,
    ChatRoom,
    FileInfo,
    MessageType,
    RoomPriority,
    RoomStatus,
    OPEN_ROOM_STATUSES,
)
from app.models.user import UserRole, STAFF_ROLES
from app.repositories.base import MessageRepository, RoomQuery, RoomRepository, UserDirectory
from app.schemas.chat_schema import (
    ChatHistoryData,
    MessageResponse,
    Pagination,
    RoomListData,
    RoomResponse,
    RoomUnread,
    SenderSummary,
    UnreadSummary,
)
from app.services.chat_policy import can_assign, can_close, has_access
from app.utils.pagination import page_to_skip, pagination_meta

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Customer Support"


class ChatService:
    """Room lifecycle, messaging and read tracking"""

    def __init__(
        self,
        rooms: RoomRepository,
        messages: MessageRepository,
        users: UserDirectory,
        history_page_size: int = 50,
        pending_rooms_limit: int = 10,
    ):
        self.rooms = rooms
        self.messages = messages
        self.users = users
        self.history_page_size = history_page_size
        self.pending_rooms_limit = pending_rooms_limit

    # Lookups

    async def get_room(self, room_id: str) -> ChatRoom:
        room = await self.rooms.get(room_id)
        if not room:
            raise NotFoundError("Chat room not found")
        return room

    async def get_accessible_room(self, room_id: str, user_id: str, role: UserRole) -> ChatRoom:
        """Load a room and enforce the access predicate"""
        room = await self.get_room(room_id)
        if not has_access(room, user_id, role):
            raise AuthorizationError("Access denied to this room")
        return room

    async def sender_summary(
        self, user_id: Optional[str], cache: Optional[Dict[str, Optional[SenderSummary]]] = None
    ) -> Optional[SenderSummary]:
        """Public profile of a user, or None if the identity store does not know them"""
        if not user_id:
            return None
        if cache is not None and user_id in cache:
            return cache[user_id]

        user = await self.users.get_user(user_id)
        summary = None
        if user:
            summary = SenderSummary(
                id=user.id,
                username=user.username,
                avatar_url=user.avatar_url,
                role=user.role,
            )

        if cache is not None:
            cache[user_id] = summary
        return summary

    async def describe_message(
        self, message: ChatMessage, cache: Optional[Dict[str, Optional[SenderSummary]]] = None
    ) -> MessageResponse:
        return MessageResponse(
            id=message.id,
            room_id=message.room_id,
            sender_id=message.sender_id,
            sender=await self.sender_summary(message.sender_id, cache),
            content=message.content,
            message_type=message.message_type,
            is_read=message.is_read,
            read_by=message.read_by,
            file_info=message.file_info,
            created_at=message.created_at,
        )

    async def describe_room(
        self,
        room: ChatRoom,
        with_last_message: bool = False,
        cache: Optional[Dict[str, Optional[SenderSummary]]] = None,
    ) -> RoomResponse:
        if cache is None:
            cache = {}

        last_message = None
        if with_last_message:
            latest = await self.messages.last_in_room(room.id)
            if latest:
                last_message = await self.describe_message(latest, cache)

        return RoomResponse(
            id=room.id,
            customer_id=room.customer_id,
            customer=await self.sender_summary(room.customer_id, cache),
            assigned_staff_id=room.assigned_staff_id,
            assigned_staff=await self.sender_summary(room.assigned_staff_id, cache),
            status=room.status,
            subject=room.subject,
            priority=room.priority,
            last_message_at=room.last_message_at,
            closed_at=room.closed_at,
            close_reason=room.close_reason,
            created_at=room.created_at,
            updated_at=room.updated_at,
            last_message=last_message,
        )

    # Rooms

    async def create_or_get_active_room(
        self,
        customer_id: str,
        role: UserRole,
        subject: Optional[str] = None,
        priority: RoomPriority = RoomPriority.MEDIUM,
    ) -> Tuple[ChatRoom, bool]:
        """
        Return the customer's open room, creating a waiting one if there is none.

        Returns:
            (room, created) where created is False when an existing room was reused
        """
        if role != UserRole.CUSTOMER:
            raise AuthorizationError("Only customers can create chat rooms")

        existing = await self.rooms.find_open_for_customer(customer_id)
        if existing:
            return existing, False

        now = datetime.utcnow()
        room = ChatRoom(
            customer_id=customer_id,
            subject=(subject or "").strip() or DEFAULT_SUBJECT,
            priority=priority,
            status=RoomStatus.WAITING,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        created = await self.rooms.insert(room)
        logger.info(f"Chat room {created.id} opened by customer {customer_id}")
        return created, True

    def _listing_query(
        self, user_id: str, role: UserRole, status_filter: Optional[str], view: Optional[str]
    ) -> RoomQuery:
        if view == "all" and role != UserRole.ADMIN:
            raise AuthorizationError("Only admins can list all chat rooms")

        query = RoomQuery()

        if role == UserRole.CUSTOMER:
            query.customer_id = user_id
        elif role in STAFF_ROLES:
            if status_filter == "pending":
                query.statuses = [RoomStatus.WAITING]
                query.oldest_first = True
            elif status_filter == "assigned":
                query.assigned_staff_id = user_id
            elif view != "all":
                query.visible_to_staff = user_id
        else:
            raise AuthorizationError("Access denied")

        if status_filter and status_filter not in ("pending", "assigned"):
            try:
                query.statuses = [RoomStatus(status_filter)]
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status_filter}")

        return query

    async def list_rooms(
        self,
        user_id: str,
        role: UserRole,
        status_filter: Optional[str] = None,
        view: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> RoomListData:
        """Role-scoped room listing, each room annotated with its latest message"""
        query = self._listing_query(user_id, role, status_filter, view)

        rooms = await self.rooms.find(query, skip=page_to_skip(page, limit), limit=limit)
        total = await self.rooms.count(query)

        cache: Dict[str, Optional[SenderSummary]] = {}
        described = [await self.describe_room(room, with_last_message=True, cache=cache) for room in rooms]

        return RoomListData(
            rooms=described,
            pagination=Pagination(**pagination_meta(page, limit, total)),
        )

    async def pending_rooms(self, limit: Optional[int] = None) -> List[RoomResponse]:
        """Waiting rooms, oldest first"""
        query = RoomQuery(statuses=[RoomStatus.WAITING], oldest_first=True)
        rooms = await self.rooms.find(query, skip=0, limit=limit or self.pending_rooms_limit)

        cache: Dict[str, Optional[SenderSummary]] = {}
        return [await self.describe_room(room, cache=cache) for room in rooms]

    async def assign_room(
        self, room_id: str, staff_id: str, role: UserRole, staff_name: str
    ) -> Tuple[ChatRoom, Optional[ChatMessage]]:
        """
        Claim a waiting room for a staff member.

        Returns:
            (room, system_message); system_message is None when the caller
            already held the room and nothing changed
        """
        if not can_assign(role):
            raise AuthorizationError("Access denied. Staff or Admin role required.")

        room = await self.get_room(room_id)
        if room.status == RoomStatus.CLOSED:
            raise ValidationError("Cannot assign a closed room")
        if room.assigned_staff_id == staff_id:
            return room, None
        if room.assigned_staff_id:
            raise ValidationError("Room is already assigned to another staff member")

        assigned = await self.rooms.assign(room_id, staff_id, datetime.utcnow())

        if assigned is None:
            # The conditional update lost against a concurrent writer
            current = await self.get_room(room_id)
            if current.assigned_staff_id == staff_id:
                return current, None
            if current.status == RoomStatus.CLOSED:
                raise ValidationError("Cannot assign a closed room")
            raise ValidationError("Room is already assigned to another staff member")

        system_message = await self._post_system_message(
            room_id, staff_id, f"{staff_name} has joined the chat"
        )
        logger.info(f"Chat room {room_id} assigned to staff {staff_id}")
        return assigned, system_message

    async def close_room(
        self, room_id: str, user_id: str, role: UserRole, reason: Optional[str] = None
    ) -> Tuple[ChatRoom, ChatMessage]:
        """Close a room; closing an already closed room is rejected"""
        room = await self.get_room(room_id)

        if not can_close(room, user_id, role):
            raise AuthorizationError("You do not have permission to close this room")
        if room.status == RoomStatus.CLOSED:
            raise ValidationError("Room is already closed")

        reason = (reason or "").strip() or None
        closed = await self.rooms.close(room_id, user_id, reason, datetime.utcnow())
        if closed is None:
            raise ValidationError("Room is already closed")

        content = f"Room closed: {reason}" if reason else "Room has been closed"
        system_message = await self._post_system_message(room_id, user_id, content)
        logger.info(f"Chat room {room_id} closed by {user_id}")
        return closed, system_message

    # Messages

    async def _insert_message(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        message_type: MessageType,
        file_info: Optional[FileInfo] = None,
    ) -> ChatMessage:
        now = datetime.utcnow()
        message = await self.messages.insert(ChatMessage(
            room_id=room_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            file_info=file_info,
            created_at=now,
            updated_at=now,
        ))
        await self.rooms.touch_last_message(room_id, now)
        return message

    async def _post_system_message(self, room_id: str, actor_id: str, content: str) -> ChatMessage:
        return await self._insert_message(room_id, actor_id, content, MessageType.SYSTEM)

    async def send_message(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        file_info: Optional[FileInfo] = None,
    ) -> ChatMessage:
        """
        Persist a user message.

        Access is not checked here; callers must run has_access first.
        """
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")
        if message_type == MessageType.SYSTEM:
            raise ValidationError("System messages cannot be sent by users")

        room = await self.get_room(room_id)
        if room.status == RoomStatus.CLOSED:
            raise ValidationError("Chat room is closed")

        return await self._insert_message(room_id, sender_id, content, message_type, file_info)

    async def get_history(
        self,
        room_id: str,
        user_id: str,
        role: UserRole,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ChatHistoryData:
        """A page of room history in chronological order, plus the caller's unread count"""
        limit = limit or self.history_page_size
        room = await self.get_accessible_room(room_id, user_id, role)

        newest_first = await self.messages.list_in_room(room_id, skip=page_to_skip(page, limit), limit=limit)
        total = await self.messages.count_in_room(room_id)
        unread = await self.messages.count_unread(room_id, user_id)

        cache: Dict[str, Optional[SenderSummary]] = {}
        messages = [await self.describe_message(m, cache) for m in reversed(newest_first)]

        return ChatHistoryData(
            room=await self.describe_room(room, cache=cache),
            messages=messages,
            unread_count=unread,
            pagination=Pagination(**pagination_meta(page, limit, total)),
        )

    async def mark_read(self, message_id: str, user_id: str, role: UserRole) -> bool:
        """
        Record that a user read a message.

        Returns:
            True if a receipt was added, False if the user had already read it
        """
        message = await self.messages.get(message_id)
        if not message:
            raise NotFoundError("Message not found")

        room = await self.rooms.get(message.room_id)
        if not room or not has_access(room, user_id, role):
            raise AuthorizationError("Access denied")

        return await self.messages.add_read_receipt(
            message_id,
            user_id,
            datetime.utcnow(),
            mark_read=message.sender_id != user_id,
        )

    async def count_unread(self, room_id: str, user_id: str) -> int:
        return await self.messages.count_unread(room_id, user_id)

    async def unread_summary(self, user_id: str, role: UserRole) -> UnreadSummary:
        """Unread totals across the caller's open rooms"""
        if role == UserRole.CUSTOMER:
            query = RoomQuery(customer_id=user_id, statuses=list(OPEN_ROOM_STATUSES))
        elif role in STAFF_ROLES:
            query = RoomQuery(assigned_staff_id=user_id, statuses=[RoomStatus.ACTIVE])
        else:
            raise AuthorizationError("Access denied")

        total_rooms = await self.rooms.count(query)
        rooms = await self.rooms.find(query, skip=0, limit=total_rooms) if total_rooms else []

        rooms_with_unread = []
        total_unread = 0
        for room in rooms:
            unread = await self.messages.count_unread(room.id, user_id)
            if unread > 0:
                rooms_with_unread.append(RoomUnread(room_id=room.id, unread_count=unread))
                total_unread += unread

        return UnreadSummary(total_unread=total_unread, rooms_with_unread=rooms_with_unread)
