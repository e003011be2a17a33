"""Support chat services"""

from app.services.chat_service import ChatService
from app.services import chat_policy

__all__ = ["ChatService", "chat_policy"]
