"""Realtime support chat gateway

Clients talk to `/ws/chat` with JSON frames shaped `{"event": ..., "data": {...}}`.
A message may be delivered more than once (direct broadcast and change feed),
so clients must de-duplicate `new_message` events by `id`.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import AuthenticationError, ChatError, InternalError, ValidationError
from app.core.security import verify_token
from app.models.chat import ChatMessage, FileInfo, MessageType
from app.models.user import UserRole, STAFF_ROLES
from app.realtime.sessions import STAFF_GROUP, Connection, GatewaySessions, room_group
from app.schemas.chat_schema import SenderSummary
from app.services.chat_service import ChatService

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100

Handler = Callable[[Connection, dict], Awaitable[None]]


def project_message(message: ChatMessage, sender: Optional[SenderSummary]) -> dict:
    """JSON-safe view of a message as pushed to clients"""
    return {
        "id": message.id,
        "roomId": message.room_id,
        "content": message.content,
        "messageType": message.message_type.value,
        "sender": sender.model_dump(mode="json") if sender else None,
        "timestamp": message.created_at.isoformat(),
        "isRead": message.is_read,
        "fileInfo": message.file_info.model_dump(mode="json") if message.file_info else None,
    }


def _preview(content: str) -> str:
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content


class ChatGateway:
    """Authenticates sockets, manages room subscriptions and fans events out"""

    def __init__(self, service: ChatService, sessions: GatewaySessions):
        self.service = service
        self.sessions = sessions
        self._handlers: Dict[str, Handler] = {
            "authenticate": self.handle_authenticate,
            "join_room": self.handle_join_room,
            "send_message": self.handle_send_message,
            "typing_start": self.handle_typing_start,
            "typing_stop": self.handle_typing_stop,
            "leave_room": self.handle_leave_room,
        }

    # Connection loop

    async def serve(self, websocket: WebSocket) -> None:
        """Run one client connection until it disconnects"""
        await websocket.accept()
        connection = Connection(websocket)
        self.sessions.register(connection)
        logger.info(f"Socket connected: {connection.id}")

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                if frame.get("text") is None:
                    await connection.emit("error", {"message": "Malformed frame"})
                    continue
                await self._dispatch(connection, frame["text"])
        except WebSocketDisconnect:
            pass
        finally:
            await self.handle_disconnect(connection)

    async def _dispatch(self, connection: Connection, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            await connection.emit("error", {"message": "Malformed frame"})
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await connection.emit("error", {"message": "Frame must carry an event name"})
            return

        event = frame["event"]
        data = frame.get("data") or {}
        if not isinstance(data, dict):
            await connection.emit("error", {"message": "Event data must be an object", "event": event})
            return

        handler = self._handlers.get(event)
        if handler is None:
            await connection.emit("error", {"message": f"Unknown event: {event}", "event": event})
            return

        try:
            await handler(connection, data)
        except ChatError as exc:
            await self._report(connection, event, exc)
        except WebSocketDisconnect:
            raise
        except Exception as exc:
            logger.exception(f"Unhandled error in '{event}' for socket {connection.id}: {str(exc)}")
            await self._report(connection, event, InternalError(f"Failed to process {event}"))

    async def _report(self, connection: Connection, event: str, exc: ChatError) -> None:
        """Errors only ever go back to the connection that caused them"""
        if event == "authenticate":
            await connection.emit("auth_error", {"message": exc.message})
        else:
            await connection.emit("error", {"message": exc.message, "event": event})

    # Helpers

    @staticmethod
    def _require_auth(connection: Connection) -> None:
        if not connection.authenticated:
            raise AuthenticationError("Not authenticated")

    @staticmethod
    def _room_id(data: dict) -> str:
        room_id = data.get("roomId")
        if not isinstance(room_id, str) or not room_id:
            raise ValidationError("roomId is required")
        return room_id

    def _user_event(self, connection: Connection, **extra) -> dict:
        return {"userId": connection.user_id, "username": connection.username, **extra}

    # Event handlers

    async def handle_authenticate(self, connection: Connection, data: dict) -> None:
        token = data.get("token")
        if not token or not isinstance(token, str):
            raise AuthenticationError("Token is required")

        payload = verify_token(token)
        if not payload or not payload.get("sub"):
            raise AuthenticationError("Invalid or expired token")

        user = await self.service.users.get_user(payload["sub"])
        if not user:
            raise AuthenticationError("User not found")
        if not user.active:
            raise AuthenticationError("User account is inactive")

        self.sessions.attach_user(connection, user)
        if user.role in STAFF_ROLES:
            self.sessions.join(STAFF_GROUP, connection)
        else:
            self.sessions.leave(STAFF_GROUP, connection)

        await connection.emit("authenticated", {
            "success": True,
            "user": {
                "id": user.id,
                "username": user.username,
                "role": user.role.value,
            }
        })
        logger.info(f"Socket {connection.id} authenticated as {user.username} ({user.role.value})")

        if user.role == UserRole.STAFF:
            await self._push_pending_rooms(connection)

    async def _push_pending_rooms(self, connection: Connection) -> None:
        try:
            rooms = await self.service.pending_rooms()
        except Exception as e:
            logger.error(f"Error fetching pending rooms: {str(e)}")
            await connection.emit("error", {"message": "Failed to load pending rooms", "event": "pending_rooms"})
            return

        await connection.emit("pending_rooms", {"rooms": rooms, "count": len(rooms)})

    async def handle_join_room(self, connection: Connection, data: dict) -> None:
        self._require_auth(connection)
        room_id = self._room_id(data)

        await self.service.get_accessible_room(room_id, connection.user_id, connection.role)

        if connection.current_room and connection.current_room != room_id:
            await self._leave(connection, connection.current_room)

        group = room_group(room_id)
        self.sessions.join(group, connection)
        connection.current_room = room_id

        await self.emit_to_group(
            group, "user_joined", self._user_event(connection, role=connection.role.value), exclude=connection
        )
        await connection.emit("room_joined", {"roomId": room_id, "message": "Successfully joined room"})
        logger.debug(f"{connection.username} joined room {room_id}")

    async def handle_send_message(self, connection: Connection, data: dict) -> None:
        self._require_auth(connection)
        room_id = self._room_id(data)

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content is required")

        try:
            message_type = MessageType(data.get("messageType") or MessageType.TEXT.value)
        except ValueError:
            raise ValidationError("Invalid message type")

        file_info = data.get("fileInfo")
        if file_info is not None:
            if not isinstance(file_info, dict):
                raise ValidationError("fileInfo must be an object")
            try:
                file_info = FileInfo(**file_info)
            except PydanticValidationError:
                raise ValidationError("Invalid fileInfo")

        await self.service.get_accessible_room(room_id, connection.user_id, connection.role)
        message = await self.service.send_message(room_id, connection.user_id, content, message_type, file_info)

        try:
            await self.broadcast_new_message(message)
        except Exception as e:
            # Persisted already; the change feed is the fallback delivery path
            logger.error(f"Direct broadcast of message {message.id} failed: {str(e)}")

        await connection.emit("message_sent", {
            "messageId": message.id,
            "roomId": room_id,
            "timestamp": message.created_at.isoformat(),
        })
        logger.debug(f"Message from {connection.username} in room {room_id}: {content[:50]}")

    async def _relay_typing(self, connection: Connection, data: dict, is_typing: bool) -> None:
        room_id = data.get("roomId")
        if not connection.authenticated or not room_id:
            return

        group = room_group(room_id)
        if not self.sessions.in_group(group, connection):
            return

        await self.emit_to_group(
            group, "user_typing", self._user_event(connection, isTyping=is_typing), exclude=connection
        )

    async def handle_typing_start(self, connection: Connection, data: dict) -> None:
        await self._relay_typing(connection, data, True)

    async def handle_typing_stop(self, connection: Connection, data: dict) -> None:
        await self._relay_typing(connection, data, False)

    async def handle_leave_room(self, connection: Connection, data: dict) -> None:
        room_id = self._room_id(data)
        await self._leave(connection, room_id)

    async def _leave(self, connection: Connection, room_id: str) -> None:
        group = room_group(room_id)
        if self.sessions.leave(group, connection):
            await self.emit_to_group(group, "user_left", self._user_event(connection))
            logger.debug(f"{connection.username} left room {room_id}")

        if connection.current_room == room_id:
            connection.current_room = None

    async def handle_disconnect(self, connection: Connection) -> None:
        current_room = connection.current_room
        self.sessions.unregister(connection)

        if connection.authenticated and current_room:
            await self.emit_to_group(
                room_group(current_room), "user_disconnected", self._user_event(connection)
            )

        logger.info(f"Socket disconnected: {connection.id} ({connection.username or 'anonymous'})")

    # Fan-out

    async def _safe_emit(self, connection: Connection, event: str, data: dict) -> None:
        try:
            await connection.emit(event, data)
        except Exception as e:
            # The peer's own receive loop cleans the connection up
            logger.debug(f"Dropping '{event}' for socket {connection.id}: {str(e)}")

    async def emit_to_group(
        self, group: str, event: str, data: dict, exclude: Optional[Connection] = None
    ) -> None:
        members = self.sessions.members(group, exclude=exclude)
        if members:
            await asyncio.gather(*(self._safe_emit(member, event, data) for member in members))

    async def send_to_room(self, room_id: str, event: str, data: dict) -> None:
        await self.emit_to_group(room_group(room_id), event, data)

    async def send_to_staff(self, event: str, data: dict) -> None:
        await self.emit_to_group(STAFF_GROUP, event, data)

    async def send_to_user(self, user_id: str, event: str, data: dict) -> None:
        for connection in self.sessions.connections_for_user(user_id):
            await self._safe_emit(connection, event, data)

    def is_user_online(self, user_id: str) -> bool:
        return self.sessions.is_user_online(user_id)

    async def broadcast_new_message(self, message: ChatMessage) -> None:
        """
        Push a persisted message to its room, alerting staff about unclaimed rooms.

        Shared by the socket handler, the REST API and the change feed.
        """
        sender = await self.service.sender_summary(message.sender_id)
        if sender is None:
            logger.warning(f"Sender {message.sender_id} not found for message {message.id}")

        await self.send_to_room(message.room_id, "new_message", project_message(message, sender))

        if sender is not None and sender.role == UserRole.CUSTOMER:
            room = await self.service.rooms.get(message.room_id)
            if room and room.assigned_staff_id is None:
                await self.send_to_staff("new_customer_message", {
                    "roomId": room.id,
                    "customer": sender.username,
                    "message": _preview(message.content),
                    "timestamp": message.created_at.isoformat(),
                })
