"""Security utilities - JWT access tokens, password hashing"""

from __future__ import annotations

import calendar
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, Optional

import bcrypt
from jose import JWTError, jwt

from authcore.config import settings
from authcore.core.clock import SystemClock, system_clock
from authcore.core.exceptions import SigningKeyUnavailableError


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed hash in storage counts as a mismatch.
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def _timestamp(dt: datetime) -> int:
    return calendar.timegm(dt.utctimetuple())


@dataclass(frozen=True)
class AccessClaims:
    """Identity snapshot embedded in an access token."""

    user_id: int
    email: str
    roles: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class AccessToken:
    token: str
    issued_at: datetime
    expires_at: datetime
    expires_in: int


class AccessTokenIssuer:
    """
    Mint and verify signed, short-lived access tokens.

    The issuer holds no per-token state: verification needs only the shared
    secret and the expiry encoded in the token itself.
    """

    TOKEN_TYPE = "access"

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 900,
        clock: SystemClock = system_clock,
    ) -> None:
        if not secret_key or not secret_key.strip():
            raise SigningKeyUnavailableError("SECRET_KEY is not configured")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, claims: AccessClaims) -> AccessToken:
        issued_at = self._clock.now().replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=self.ttl_seconds)
        payload = {
            "sub": str(claims.user_id),
            "email": claims.email,
            "roles": sorted(claims.roles),
            "typ": self.TOKEN_TYPE,
            "iat": _timestamp(issued_at),
            "exp": _timestamp(expires_at),
            "jti": secrets.token_urlsafe(16),
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        return AccessToken(
            token=token,
            issued_at=issued_at,
            expires_at=expires_at,
            expires_in=self.ttl_seconds,
        )

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode and verify an access token

        Args:
            token: JWT token string

        Returns:
            Optional[Dict]: Decoded claims, or None if the signature, type or
            expiry check fails
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        if payload.get("typ") != self.TOKEN_TYPE:
            return None
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or exp <= _timestamp(self._clock.now()):
            return None
        if not payload.get("sub"):
            return None
        return payload


def claims_for(user_id: int, email: str, roles: Iterable[str]) -> AccessClaims:
    return AccessClaims(user_id=user_id, email=email, roles=frozenset(roles))


def build_access_token_issuer(clock: SystemClock = system_clock) -> AccessTokenIssuer:
    """Create the issuer from settings; fails fast when the key is missing."""
    return AccessTokenIssuer(
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        ttl_seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
        clock=clock,
    )
