"""API dependencies - authentication, authorization and client origin"""

from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from authcore.config import settings
from authcore.core.database import get_db
from authcore.core.exceptions import AuthenticationError, AuthorizationError
from authcore.models.role import RoleType
from authcore.services.origin_guard import OriginFingerprint
from authcore.services.role_service import role_enforcer
from authcore.services.session_service import session_service

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Caller identity taken from a verified access token"""
    user_id: int
    email: str
    roles: FrozenSet[str]

    def has_role(self, role: RoleType) -> bool:
        return role.value in self.roles


def client_ip(request: Request) -> Optional[str]:
    """Peer address, or the first X-Forwarded-For hop when the peer is a trusted proxy"""
    peer = request.client.host if request.client else None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and peer in settings.TRUSTED_PROXIES:
        return forwarded.split(",")[0].strip() or peer
    return peer


def get_client_fingerprint(request: Request) -> OriginFingerprint:
    """Origin of the current request: client IP plus User-Agent"""
    return OriginFingerprint.of(client_ip(request), request.headers.get("User-Agent"))


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AuthContext:
    """
    Resolve the caller from the bearer access token

    Roles are read through the role cache rather than trusted from the
    token, so a revoked role stops working before the token expires.

    Raises:
        AuthenticationError: missing, invalid or expired token, or unknown identity
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = session_service.issuer.verify(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    roles = role_enforcer.current_roles(db, user_id)
    if roles is None:
        raise AuthenticationError("User not found")

    return AuthContext(user_id=user_id, email=payload.get("email", ""), roles=roles)


def require_roles(*allowed: RoleType) -> Callable[..., AuthContext]:
    """Dependency factory: caller must hold at least one of the given roles"""

    def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not any(ctx.has_role(role) for role in allowed):
            raise AuthorizationError(
                f"Requires one of: {', '.join(role.value for role in allowed)}"
            )
        return ctx

    return dependency


require_admin = require_roles(RoleType.ADMIN)
