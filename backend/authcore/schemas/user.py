"""User and authentication schemas"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime


class RegisterRequest(BaseModel):
    """Registration schema"""
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    mobile_number: str = Field(..., pattern=r'^\+?[0-9]{8,15}$')
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator('email')
    @classmethod
    def email_lowercase(cls, v):
        """Emails are compared case-insensitively"""
        return str(v).strip().lower()


class LoginRequest(BaseModel):
    """User login schema"""
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, max_length=64)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, max_length=64)


class UserResponse(BaseModel):
    """User response schema"""
    id: int
    email: str
    name: str
    roles: List[str]
    is_active: bool
    created_at: Optional[datetime]
    last_login: Optional[datetime]

    class Config:
        from_attributes = True

    @field_validator('roles', mode='before')
    @classmethod
    def roles_as_names(cls, v):
        return sorted(getattr(role, "value", role) for role in v)


class TokenResponse(BaseModel):
    """Access + refresh token pair"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int
    user: UserResponse


class SessionResponse(BaseModel):
    """One active refresh-token session, without the token value"""
    id: int
    device_info: Optional[str]
    ip_address: Optional[str]
    created_at: Optional[datetime]
    expires_at: datetime

    class Config:
        from_attributes = True


class UserWithRolesPage(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    size: int
