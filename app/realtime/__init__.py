"""Realtime delivery of support chat events over WebSockets"""

from app.realtime.sessions import Connection, GatewaySessions, STAFF_GROUP, room_group
from app.realtime.gateway import ChatGateway, project_message
from app.realtime.change_feed import MessageChangeFeed

__all__ = [
    "Connection",
    "GatewaySessions",
    "STAFF_GROUP",
    "room_group",
    "ChatGateway",
    "project_message",
    "MessageChangeFeed",
]
