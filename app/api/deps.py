"""FastAPI dependencies for authentication and chat services"""

from fastapi import Depends, Header, Request
from typing import Optional

from app.core.errors import AuthenticationError, AuthorizationError
from app.core.security import verify_token
from app.models.user import User, UserRole, STAFF_ROLES
from app.realtime.gateway import ChatGateway
from app.repositories.base import UserDirectory
from app.services.chat_service import ChatService


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_chat_gateway(request: Request) -> ChatGateway:
    return request.app.state.chat_gateway


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.chat_service.users


async def get_current_user(
    authorization: Optional[str] = Header(None),
    users: UserDirectory = Depends(get_user_directory)
) -> User:
    """
    Dependency to get current authenticated user from JWT token

    Args:
        authorization: Authorization header with Bearer token
        users: Identity store lookup

    Returns:
        The authenticated user

    Raises:
        AuthenticationError: If the token is missing, invalid or names an unknown user
        AuthorizationError: If the account is inactive
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Not authenticated")

    token = authorization.replace("Bearer ", "")
    payload = verify_token(token)

    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = await users.get_user(user_id)

    if not user:
        raise AuthenticationError("User not found")

    if not user.active:
        raise AuthorizationError("User account is inactive")

    return user


async def require_staff(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency to require staff or admin role

    Raises:
        AuthorizationError: If user doesn't have required permissions
    """
    if current_user.role not in STAFF_ROLES:
        raise AuthorizationError("Access denied. Staff or Admin role required.")

    return current_user


async def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """Dependency to require admin role"""
    if current_user.role != UserRole.ADMIN:
        raise AuthorizationError("Access denied. Admin role required.")

    return current_user
