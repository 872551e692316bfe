"""Database models"""

from authcore.models.role import RoleType, UserRole
from authcore.models.user import User
from authcore.models.security import RefreshToken
from authcore.models.audit import AuditEvent

__all__ = ["RoleType", "UserRole", "User", "RefreshToken", "AuditEvent"]
