"""Login, refresh-token rotation and logout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from jose import JOSEError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authcore.config import settings
from authcore.core.clock import new_token_value
from authcore.core.database import unit_of_work
from authcore.core.exceptions import (
    BaseAPIException,
    InvalidCredentialsError,
    OriginMismatchError,
    SessionCreationError,
    SessionRefreshError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenReplayDetectedError,
    TokenRevokedError,
)
from authcore.core.metrics import LOGIN_ATTEMPTS, REFRESH_OUTCOMES, SESSIONS_REVOKED, TOKENS_SWEPT
from authcore.core.security import AccessToken, AccessTokenIssuer, build_access_token_issuer, claims_for
from authcore.models.security import RefreshToken
from authcore.models.user import User
from authcore.schemas.user import LoginRequest
from authcore.services.audit_service import SESSIONS_REVOKED as SESSIONS_REVOKED_ACTION, audit_service
from authcore.services.notifier import AlertRecipient, IncidentNotifier, build_incident_notifier
from authcore.services.origin_guard import OriginFingerprint, OriginGuard
from authcore.services.reuse_detector import ReuseDetector
from authcore.services.token_ledger import RefreshTokenLedger, token_prefix
from authcore.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionTokens:
    """Token pair handed back by login and refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    user: User


class SessionRotationService:
    """
    Session lifecycle.

    Refresh tokens are single use: a successful exchange revokes the
    presented token and issues its successor in the same transaction, and a
    later presentation of the revoked token is handled as theft.
    """

    def __init__(
        self,
        issuer: AccessTokenIssuer,
        ledger: RefreshTokenLedger,
        guard: OriginGuard,
        notifier: IncidentNotifier,
        users: UserService = user_service,
        block_on_origin_mismatch: bool = False,
    ) -> None:
        self.issuer = issuer
        self.ledger = ledger
        self.guard = guard
        self.notifier = notifier
        self.users = users
        self.block_on_origin_mismatch = block_on_origin_mismatch
        self.reuse_detector = ReuseDetector(ledger, notifier)

    def _mint_access(self, user: User) -> AccessToken:
        return self.issuer.issue(claims_for(user.id, user.email, user.role_names))

    def _tokens(self, access: AccessToken, record: RefreshToken, user: User) -> SessionTokens:
        return SessionTokens(
            access_token=access.token,
            refresh_token=record.token,
            expires_in=access.expires_in,
            refresh_expires_in=self.ledger.ttl_seconds,
            user=user,
        )

    def login(self, db: Session, credentials: LoginRequest, fingerprint: OriginFingerprint) -> SessionTokens:
        """
        Authenticate and open a session.

        Raises:
            InvalidCredentialsError: for any credential problem; nothing is created
            SessionCreationError: storage or signing failure
        """
        try:
            user = self.users.authenticate_user(db, credentials.email, credentials.password)
        except InvalidCredentialsError:
            db.rollback()
            LOGIN_ATTEMPTS.labels("failure").inc()
            raise
        except SQLAlchemyError as exc:
            raise self._login_failed(db, exc) from exc

        try:
            with unit_of_work(db):
                record = self.ledger.create(db, user, fingerprint)
                access = self._mint_access(user)
        except (SQLAlchemyError, JOSEError, ValueError) as exc:
            raise self._login_failed(db, exc) from exc

        LOGIN_ATTEMPTS.labels("success").inc()
        logger.info("Login successful for user_id=%s from ip=%s", user.id, fingerprint.ip_address)
        return self._tokens(access, record, user)

    def refresh(self, db: Session, token: str, fingerprint: OriginFingerprint) -> SessionTokens:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            TokenNotFoundError: unknown token
            TokenReplayDetectedError: token already revoked; all sessions of the owner are revoked
            TokenExpiredError: token past its expiry
            OriginMismatchError: origin differs and blocking mode is on
            SessionRefreshError: storage or signing failure
        """
        logger.debug("Refresh attempt with %s from ip=%s", token_prefix(token), fingerprint.ip_address)
        try:
            record = self.ledger.verify(db, token)
        except TokenNotFoundError:
            REFRESH_OUTCOMES.labels("not_found").inc()
            raise
        except TokenRevokedError as exc:
            self._handle_replay(db, exc.record, fingerprint)
        except TokenExpiredError:
            REFRESH_OUTCOMES.labels("expired").inc()
            raise
        except SQLAlchemyError as exc:
            raise self._refresh_failed(db, exc) from exc

        try:
            user = record.user
        except SQLAlchemyError as exc:
            raise self._refresh_failed(db, exc) from exc
        if user is None or not user.is_active:
            REFRESH_OUTCOMES.labels("not_found").inc()
            raise TokenNotFoundError()

        if not self.guard.matches(record, fingerprint):
            self._handle_origin_mismatch(record, user, fingerprint)

        successor = new_token_value()
        try:
            with unit_of_work(db):
                won = self.ledger.claim(db, record, successor=successor)
                if won:
                    new_record = self.ledger.create(db, user, fingerprint, token_value=successor)
                    access = self._mint_access(user)
        except BaseAPIException:
            raise
        except (SQLAlchemyError, JOSEError, ValueError) as exc:
            raise self._refresh_failed(db, exc) from exc

        if not won:
            # A concurrent request rotated this token first.
            db.expire(record)
            self._handle_replay(db, record, fingerprint)

        REFRESH_OUTCOMES.labels("success").inc()
        logger.info("Refresh token rotated for user_id=%s", user.id)
        return self._tokens(access, new_record, user)

    @staticmethod
    def _login_failed(db: Session, exc: Exception) -> SessionCreationError:
        db.rollback()
        logger.error("Login failed: %s", exc, exc_info=True)
        LOGIN_ATTEMPTS.labels("error").inc()
        return SessionCreationError()

    @staticmethod
    def _refresh_failed(db: Session, exc: Exception) -> SessionRefreshError:
        db.rollback()
        logger.error("Refresh failed: %s", exc, exc_info=True)
        REFRESH_OUTCOMES.labels("error").inc()
        return SessionRefreshError()

    def _handle_replay(self, db: Session, record: RefreshToken, fingerprint: OriginFingerprint) -> None:
        REFRESH_OUTCOMES.labels("replay").inc()
        try:
            self.reuse_detector.handle(db, record, fingerprint)
        except SQLAlchemyError as exc:
            logger.error("Mass revocation after replay failed for user_id=%s: %s", record.user_id, exc, exc_info=True)
        raise TokenReplayDetectedError()

    def _handle_origin_mismatch(self, record: RefreshToken, user: User, fingerprint: OriginFingerprint) -> None:
        logger.warning(
            "Refresh from a different origin for user_id=%s: recorded ip=%s, presented ip=%s",
            user.id,
            record.ip_address,
            fingerprint.ip_address,
        )
        try:
            self.notifier.notify_new_device_login(AlertRecipient.from_user(user), fingerprint)
        except Exception as exc:
            logger.error("Failed to dispatch new-device alert: %s", exc)

        if self.block_on_origin_mismatch:
            REFRESH_OUTCOMES.labels("origin_mismatch").inc()
            raise OriginMismatchError()
        logger.info("Allowing refresh despite origin change for user_id=%s", user.id)

    def logout(self, db: Session, token: Optional[str]) -> None:
        """Revoke the presented token. Succeeds whether or not it exists."""
        if not token:
            return
        try:
            with unit_of_work(db):
                self.ledger.revoke(db, token)
        except SQLAlchemyError as exc:
            logger.error("Error during logout: %s", exc)

    def revoke_all_sessions(
        self,
        db: Session,
        user_id: int,
        reason: str = "All sessions were signed out",
        actor_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> int:
        user = self.users.get_user_by_id(db, user_id)
        with unit_of_work(db):
            count = self.ledger.revoke_all_for_user(db, user_id)
            audit_service.log_event(
                db,
                user_id=actor_id,
                action=SESSIONS_REVOKED_ACTION,
                target_type="user",
                target_id=str(user_id),
                ip_address=ip_address,
                metadata={"revoked_count": count, "reason": reason},
                commit=False,
            )

        SESSIONS_REVOKED.labels("manual").inc(count)
        if user is not None and count:
            try:
                self.notifier.notify_all_sessions_revoked(AlertRecipient.from_user(user), reason)
            except Exception as exc:
                logger.error("Failed to dispatch sessions-revoked alert: %s", exc)
        return count

    def list_sessions(self, db: Session, user_id: int) -> List[RefreshToken]:
        return self.ledger.active_tokens_for_user(db, user_id)

    def sweep_expired(self, db: Session) -> int:
        with unit_of_work(db):
            deleted = self.ledger.sweep_expired(db)
        TOKENS_SWEPT.inc(deleted)
        return deleted


def build_session_service() -> SessionRotationService:
    return SessionRotationService(
        issuer=build_access_token_issuer(),
        ledger=RefreshTokenLedger(),
        guard=OriginGuard(settings.ORIGIN_MATCH_MODE),
        notifier=build_incident_notifier(),
        block_on_origin_mismatch=settings.ORIGIN_MISMATCH_BLOCKS,
    )


session_service = build_session_service()
