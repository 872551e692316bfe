"""Refresh token ledger: create, verify, claim, revoke and sweep records."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from authcore.config import settings
from authcore.core.clock import SystemClock, new_token_value, system_clock
from authcore.core.exceptions import TokenExpiredError, TokenNotFoundError, TokenRevokedError
from authcore.models.security import RefreshToken
from authcore.models.user import User
from authcore.services.device_info import describe_device
from authcore.services.origin_guard import OriginFingerprint

logger = logging.getLogger(__name__)


def token_prefix(token: Optional[str]) -> str:
    """Loggable form of a token value."""
    return f"{token[:8]}..." if token else "<none>"


class RefreshTokenLedger:
    """
    Durable table of issued refresh tokens.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(
        self,
        clock: SystemClock = system_clock,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self.clock = clock
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.refresh_token_ttl_seconds

    @staticmethod
    def _naive_utc(dt: datetime) -> datetime:
        return dt.astimezone(timezone.utc).replace(tzinfo=None) if dt and dt.tzinfo else dt

    def is_expired(self, record: RefreshToken) -> bool:
        return self._naive_utc(record.expires_at) <= self.clock.now()

    def create(
        self,
        db: Session,
        user: User,
        fingerprint: OriginFingerprint,
        token_value: Optional[str] = None,
    ) -> RefreshToken:
        now = self.clock.now()
        record = RefreshToken(
            token=token_value or new_token_value(),
            user_id=user.id,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            revoked=False,
            ip_address=fingerprint.ip_address,
            user_agent=fingerprint.user_agent,
            device_info=describe_device(fingerprint.user_agent),
            created_at=now,
        )
        db.add(record)
        db.flush()
        logger.info("Refresh token created for user_id=%s from ip=%s", user.id, fingerprint.ip_address)
        return record

    def find(self, db: Session, token: str) -> Optional[RefreshToken]:
        return db.query(RefreshToken).filter(RefreshToken.token == token).first()

    def verify(self, db: Session, token: str) -> RefreshToken:
        """
        Check existence, then revocation, then expiry.

        Raises:
            TokenNotFoundError: no such token
            TokenRevokedError: token was revoked (possible reuse)
            TokenExpiredError: token outlived its TTL
        """
        record = self.find(db, token) if token else None
        if record is None:
            raise TokenNotFoundError()
        if record.revoked:
            logger.warning("Revoked refresh token presented: %s user_id=%s", token_prefix(token), record.user_id)
            raise TokenRevokedError(record)
        if self.is_expired(record):
            logger.info("Expired refresh token presented: %s user_id=%s", token_prefix(token), record.user_id)
            raise TokenExpiredError(record)
        return record

    def claim(self, db: Session, record: RefreshToken, successor: Optional[str] = None) -> bool:
        """
        Atomically move an ACTIVE record to revoked.

        Compare-and-set on the revoked flag: of any number of concurrent
        callers, exactly one sees True.
        """
        updated = (
            db.query(RefreshToken)
            .filter(RefreshToken.id == record.id, RefreshToken.revoked == False)  # noqa: E712
            .update(
                {
                    RefreshToken.revoked: True,
                    RefreshToken.revoked_at: self.clock.now(),
                    RefreshToken.replaced_by_token: successor,
                },
                synchronize_session=False,
            )
        )
        db.expire(record)
        return updated == 1

    def revoke(self, db: Session, token: str) -> bool:
        """Revoke one token. Unknown or already revoked tokens are a no-op."""
        if not token:
            return False
        updated = (
            db.query(RefreshToken)
            .filter(RefreshToken.token == token, RefreshToken.revoked == False)  # noqa: E712
            .update(
                {RefreshToken.revoked: True, RefreshToken.revoked_at: self.clock.now()},
                synchronize_session=False,
            )
        )
        if updated:
            logger.info("Refresh token revoked: %s", token_prefix(token))
        return updated == 1

    def revoke_all_for_user(self, db: Session, user_id: int) -> int:
        db.flush()
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked == False)  # noqa: E712
            .update(
                {RefreshToken.revoked: True, RefreshToken.revoked_at: self.clock.now()},
                synchronize_session=False,
            )
        )
        db.expire_all()
        logger.warning("All %s refresh tokens revoked for user_id=%s", count, user_id)
        return count

    def sweep_expired(self, db: Session) -> int:
        deleted = (
            db.query(RefreshToken)
            .filter(RefreshToken.expires_at < self.clock.now())
            .delete(synchronize_session=False)
        )
        logger.info("Deleted %s expired refresh tokens", deleted)
        return deleted

    def active_tokens_for_user(self, db: Session, user_id: int) -> List[RefreshToken]:
        return (
            db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked == False,  # noqa: E712
                RefreshToken.expires_at > self.clock.now(),
            )
            .order_by(RefreshToken.created_at.desc())
            .all()
        )

    def count_active_for_user(self, db: Session, user_id: int) -> int:
        return (
            db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked == False,  # noqa: E712
                RefreshToken.expires_at > self.clock.now(),
            )
            .count()
        )
