"""Role ladder and role assignment model"""

from enum import Enum
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from authcore.core.database import Base


class RoleType(str, Enum):
    """Privilege ladder: USER < EMPLOYEE < MANAGER < ADMIN"""

    USER = "USER"
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def level(self) -> int:
        return _LEVELS[self]

    def next_role(self) -> Optional["RoleType"]:
        """Next rung of the ladder, or None at the top."""
        ladder = list(RoleType)
        index = ladder.index(self)
        return ladder[index + 1] if index + 1 < len(ladder) else None


_DISPLAY_NAMES = {
    RoleType.USER: "Customer",
    RoleType.EMPLOYEE: "Employee",
    RoleType.MANAGER: "Manager",
    RoleType.ADMIN: "Administrator",
}

_LEVELS = {
    RoleType.USER: 1,
    RoleType.EMPLOYEE: 2,
    RoleType.MANAGER: 3,
    RoleType.ADMIN: 5,
}


class UserRole(Base):
    """One role held by one user. The composite key forbids duplicates."""

    __tablename__ = "user_roles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String(20), primary_key=True)
    granted_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="role_assignments")

    def __repr__(self):
        return f"<UserRole(user_id={self.user_id}, role='{self.role}')>"
