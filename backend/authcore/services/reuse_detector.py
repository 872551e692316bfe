"""Theft response for refresh tokens presented after revocation."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from authcore.core.database import unit_of_work
from authcore.core.metrics import REPLAY_DETECTIONS, SESSIONS_REVOKED
from authcore.models.security import RefreshToken
from authcore.services.audit_service import REPLAY_DETECTED, audit_service
from authcore.services.notifier import AlertRecipient, IncidentNotifier
from authcore.services.origin_guard import OriginFingerprint
from authcore.services.token_ledger import RefreshTokenLedger, token_prefix

logger = logging.getLogger(__name__)

REPLAY_REASON = "Replay attack: a revoked refresh token was reused"


class ReuseDetector:
    """
    A revoked token coming back means it was copied before rotation.

    The response revokes every session of the owner and commits that before
    notifying anyone; notifier trouble cannot undo or delay the revocation.
    """

    def __init__(self, ledger: RefreshTokenLedger, notifier: IncidentNotifier) -> None:
        self.ledger = ledger
        self.notifier = notifier

    def handle(self, db: Session, record: RefreshToken, fingerprint: OriginFingerprint) -> int:
        user_id = record.user_id
        presented = record.token
        logger.error(
            "SECURITY ALERT: revoked refresh token %s reused for user_id=%s from ip=%s",
            token_prefix(presented),
            user_id,
            fingerprint.ip_address,
        )

        with unit_of_work(db):
            revoked = self.ledger.revoke_all_for_user(db, user_id)
            audit_service.log_event(
                db,
                user_id=None,
                action=REPLAY_DETECTED,
                target_type="user",
                target_id=str(user_id),
                ip_address=fingerprint.ip_address,
                metadata={"revoked_count": revoked, "token_prefix": token_prefix(presented)},
                commit=False,
            )

        REPLAY_DETECTIONS.inc()
        SESSIONS_REVOKED.labels("replay").inc(revoked)

        user = record.user
        if user is not None:
            self._notify(AlertRecipient.from_user(user), fingerprint)
        return revoked

    def _notify(self, recipient: AlertRecipient, fingerprint: OriginFingerprint) -> None:
        try:
            self.notifier.notify_replay_detected(recipient, fingerprint)
            self.notifier.notify_all_sessions_revoked(recipient, REPLAY_REASON)
        except Exception as exc:
            logger.error("Failed to dispatch replay alerts for user_id=%s: %s", recipient.user_id, exc, exc_info=True)
