"""Role management schemas"""

from typing import List, Optional

from pydantic import BaseModel


class RoleChangeResponse(BaseModel):
    success: bool = True
    message: str
    user_id: int
    role: str
    roles: List[str]
    changed_by: Optional[int] = None


class SessionRevocationResponse(BaseModel):
    success: bool = True
    user_id: int
    revoked_count: int


class SweepResponse(BaseModel):
    success: bool = True
    deleted_count: int
