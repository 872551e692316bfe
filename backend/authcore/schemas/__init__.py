"""Pydantic schemas for API validation"""

from authcore.schemas.user import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    UserResponse,
    TokenResponse,
    SessionResponse,
    UserWithRolesPage,
)
from authcore.schemas.role import RoleChangeResponse, SessionRevocationResponse, SweepResponse
from authcore.schemas.response import ErrorResponse, HealthResponse
from authcore.schemas.audit import AuditEventResponse

__all__ = [
    "RegisterRequest", "LoginRequest", "RefreshTokenRequest", "LogoutRequest",
    "UserResponse", "TokenResponse", "SessionResponse", "UserWithRolesPage",
    "RoleChangeResponse", "SessionRevocationResponse", "SweepResponse",
    "AuditEventResponse",
    "ErrorResponse", "HealthResponse"
]
