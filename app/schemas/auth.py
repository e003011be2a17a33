"""Authentication schemas"""

from pydantic import BaseModel, EmailStr
from typing import Optional
from app.models.user import UserRole


class UserProfileResponse(BaseModel):
    """User profile response"""
    id: str
    email: EmailStr
    username: str
    avatar_url: Optional[str] = None
    role: UserRole
    active: bool

    class Config:
        json_schema_extra = {
            "example": {
                "id": "507f1f77bcf86cd799439011",
                "email": "user@example.com",
                "username": "whiskers_fan",
                "avatar_url": None,
                "role": "customer",
                "active": True
            }
        }
