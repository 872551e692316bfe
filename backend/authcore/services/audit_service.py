"""Audit service for role changes and session incidents."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from authcore.models.audit import AuditEvent

ROLE_GRANTED = "role_granted"
ROLE_REVOKED = "role_revoked"
SESSIONS_REVOKED = "sessions_revoked"
REPLAY_DETECTED = "refresh_token_replay"


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        user_id: Optional[int],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> AuditEvent:
        event = AuditEvent(
            user_id=user_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            ip_address=ip_address,
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False),
        )
        db.add(event)
        if commit:
            db.commit()
            db.refresh(event)
        else:
            db.flush()
        return event

    @staticmethod
    def list_events(
        db: Session,
        *,
        action: Optional[str] = None,
        target_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        query = db.query(AuditEvent)
        if action:
            query = query.filter(AuditEvent.action == action)
        if target_id:
            query = query.filter(AuditEvent.target_id == target_id)
        return query.order_by(AuditEvent.id.desc()).limit(limit).all()

    @staticmethod
    def metadata_of(event: AuditEvent) -> Dict[str, Any]:
        try:
            return json.loads(event.metadata_json or "{}")
        except json.JSONDecodeError:
            return {}


audit_service = AuditService()
