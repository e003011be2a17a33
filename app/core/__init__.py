"""Core utilities for the application"""

from app.core.security import create_access_token, verify_token
from app.core.errors import (
    ChatError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
    InternalError,
)

__all__ = [
    "create_access_token",
    "verify_token",
    "ChatError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "InternalError",
]
