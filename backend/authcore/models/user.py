"""User model"""

from typing import Set

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from authcore.core.database import Base
from authcore.models.role import RoleType, UserRole


class User(Base):
    """User model for authentication and authorization"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False, default="")
    mobile_number = Column(String(20), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True))

    # Relationships
    role_assignments = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
    audit_events = relationship("AuditEvent")

    __table_args__ = (
        Index('idx_users_mobile_number', 'mobile_number'),
    )

    @property
    def roles(self) -> Set[RoleType]:
        return {RoleType(assignment.role) for assignment in self.role_assignments}

    @property
    def role_names(self) -> Set[str]:
        return {assignment.role for assignment in self.role_assignments}

    def has_role(self, role: RoleType) -> bool:
        return role.value in self.role_names

    def add_role(self, role: RoleType) -> None:
        if not self.has_role(role):
            self.role_assignments.append(UserRole(role=role.value))

    def remove_role(self, role: RoleType) -> None:
        self.role_assignments = [a for a in self.role_assignments if a.role != role.value]

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', roles={sorted(self.role_names)})>"
