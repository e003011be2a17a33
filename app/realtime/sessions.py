"""Connection bookkeeping for the realtime gateway

State here is process-local and rebuilt from scratch as clients reconnect.
"""

import asyncio
import uuid
from typing import Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from app.models.user import User, UserRole, STAFF_ROLES

STAFF_GROUP = "staff"


def room_group(room_id: str) -> str:
    return f"room:{room_id}"


class Connection:
    """One live WebSocket plus the identity attached to it"""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id: Optional[str] = None
        self.role: Optional[UserRole] = None
        self.username: Optional[str] = None
        self.current_room: Optional[str] = None
        self._send_lock = asyncio.Lock()

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    async def emit(self, event: str, data: dict) -> None:
        """Send one event frame; frames to the same socket never interleave"""
        frame = {"event": event, "data": jsonable_encoder(data)}
        async with self._send_lock:
            await self.websocket.send_json(frame)


class GatewaySessions:
    """Registry of connections, users and broadcast groups"""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._user_connections: Dict[str, Set[str]] = {}
        self._groups: Dict[str, Set[str]] = {}

    def register(self, connection: Connection) -> None:
        self._connections[connection.id] = connection

    def unregister(self, connection: Connection) -> None:
        """Drop a connection together with its user mapping and group memberships"""
        self._leave_all(connection)
        self._detach_user(connection)
        self._connections.pop(connection.id, None)

    def lookup(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def attach_user(self, connection: Connection, user: User) -> None:
        if connection.user_id and connection.user_id != user.id:
            # Re-authenticated as someone else: forget the old identity's subscriptions
            self._leave_all(connection)
            connection.current_room = None
        self._detach_user(connection)

        connection.user_id = user.id
        connection.role = user.role
        connection.username = user.username
        self._user_connections.setdefault(user.id, set()).add(connection.id)

    def _detach_user(self, connection: Connection) -> None:
        if not connection.user_id:
            return
        ids = self._user_connections.get(connection.user_id)
        if ids is not None:
            ids.discard(connection.id)
            if not ids:
                del self._user_connections[connection.user_id]

    def connections_for_user(self, user_id: str) -> List[Connection]:
        return [self._connections[cid] for cid in self._user_connections.get(user_id, ()) if cid in self._connections]

    def join(self, group: str, connection: Connection) -> None:
        self._groups.setdefault(group, set()).add(connection.id)

    def leave(self, group: str, connection: Connection) -> bool:
        members = self._groups.get(group)
        if not members or connection.id not in members:
            return False
        members.discard(connection.id)
        if not members:
            del self._groups[group]
        return True

    def _leave_all(self, connection: Connection) -> None:
        for group in [g for g, members in self._groups.items() if connection.id in members]:
            self.leave(group, connection)

    def in_group(self, group: str, connection: Connection) -> bool:
        return connection.id in self._groups.get(group, ())

    def members(self, group: str, exclude: Optional[Connection] = None) -> List[Connection]:
        return [
            self._connections[cid]
            for cid in list(self._groups.get(group, ()))
            if cid in self._connections and (exclude is None or cid != exclude.id)
        ]

    def is_user_online(self, user_id: str) -> bool:
        return bool(self._user_connections.get(user_id))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def online_users_count(self) -> int:
        return len(self._user_connections)

    @property
    def online_staff_count(self) -> int:
        staff = {
            connection.user_id
            for connection in self._connections.values()
            if connection.authenticated and connection.role in STAFF_ROLES
        }
        return len(staff)
