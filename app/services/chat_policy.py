"""Access rules for support chat rooms

These predicates are the only place room permissions are decided. The REST
routes, the realtime gateway and the chat service all call them.
"""

from app.models.chat import ChatRoom
from app.models.user import UserRole, STAFF_ROLES


def has_access(room: ChatRoom, user_id: str, role: UserRole) -> bool:
    """
    Check whether a user may read from and post into a room.

    Customers only see their own rooms, staff see rooms that are unassigned or
    assigned to them, admins see everything.
    """
    if role == UserRole.CUSTOMER:
        return room.customer_id == user_id
    if role == UserRole.STAFF:
        return room.assigned_staff_id is None or room.assigned_staff_id == user_id
    if role == UserRole.ADMIN:
        return True
    return False


def can_close(room: ChatRoom, user_id: str, role: UserRole) -> bool:
    """Admins, the assigned staff member and the owning customer may close a room"""
    if role == UserRole.ADMIN:
        return True
    if role == UserRole.STAFF:
        return room.assigned_staff_id is not None and room.assigned_staff_id == user_id
    if role == UserRole.CUSTOMER:
        return room.customer_id == user_id
    return False


def can_assign(role: UserRole) -> bool:
    return role in STAFF_ROLES
