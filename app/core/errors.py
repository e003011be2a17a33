"""Typed application errors shared by the REST API and the realtime gateway"""

from fastapi import status


class ChatError(Exception):
    """Base class for errors raised by the support chat layer"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(ChatError):
    """Missing, invalid or expired credentials"""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class AuthorizationError(ChatError):
    """Role check or room access predicate failed"""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFoundError(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ValidationError(ChatError):
    """Bad input or a state transition that is not allowed"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InternalError(ChatError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
