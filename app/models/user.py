"""User models"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    """User role enumeration"""
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


STAFF_ROLES = (UserRole.STAFF, UserRole.ADMIN)


class User(BaseModel):
    """User record as provided by the identity store"""
    id: Optional[str] = Field(None, alias="_id")
    email: EmailStr
    username: str
    avatar_url: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "username": "johndoe",
                "avatar_url": "https://cdn.example.com/avatars/johndoe.png",
                "role": "customer",
                "active": True
            }
        }

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
