"""Admin routes - role management, session revocation and audit trail"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from authcore.api.deps import AuthContext, client_ip, require_admin
from authcore.core.database import get_db
from authcore.core.exceptions import ResourceNotFoundError
from authcore.models.role import RoleType
from authcore.models.user import User
from authcore.schemas.audit import AuditEventResponse
from authcore.schemas.role import RoleChangeResponse, SessionRevocationResponse, SweepResponse
from authcore.schemas.user import UserResponse, UserWithRolesPage
from authcore.services.audit_service import audit_service
from authcore.services.role_service import RoleGrantRequest, role_enforcer
from authcore.services.session_service import session_service
from authcore.services.user_service import user_service

router = APIRouter()


def _role_change(user: User, role: RoleType, message: str, actor: AuthContext) -> RoleChangeResponse:
    return RoleChangeResponse(
        message=message,
        user_id=user.id,
        role=role.value,
        roles=sorted(user.role_names),
        changed_by=actor.user_id,
    )


@router.get("/users", response_model=UserWithRolesPage)
def list_users(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=200),
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Identities with their current roles, ordered by id"""
    users, total = user_service.list_users(db, page=page, size=size)
    return UserWithRolesPage(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        size=size,
    )


@router.post("/users/{user_id}/roles/{role}", response_model=RoleChangeResponse)
def grant_role(
    user_id: int,
    role: RoleType,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Grant a role along the ladder

    Raises:
        ProtectedRoleViolationError: role is USER
        HierarchyViolationError: prerequisite role missing
        RoleAlreadyHeldError: role already held
    """
    user = role_enforcer.grant(db, RoleGrantRequest(user_id, role, admin.user_id, client_ip(request)))
    return _role_change(user, role, f"Role {role.value} granted", admin)


@router.delete("/users/{user_id}/roles/{role}", response_model=RoleChangeResponse)
def revoke_role(
    user_id: int,
    role: RoleType,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = role_enforcer.revoke(db, RoleGrantRequest(user_id, role, admin.user_id, client_ip(request)))
    return _role_change(user, role, f"Role {role.value} revoked", admin)


@router.post("/users/{user_id}/promote", response_model=RoleChangeResponse)
def promote_next(
    user_id: int,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Grant the next rung above the highest role held"""
    user, role = role_enforcer.promote_next(db, user_id, admin.user_id, client_ip(request))
    return _role_change(user, role, f"Promoted to {role.display_name}", admin)


@router.post("/users/{user_id}/promote-to-admin", response_model=RoleChangeResponse)
def promote_to_admin(
    user_id: int,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = role_enforcer.promote_to_admin(db, user_id, admin.user_id, client_ip(request))
    return _role_change(user, RoleType.ADMIN, "Promoted to Administrator", admin)


@router.post("/users/{user_id}/demote-from-admin", response_model=RoleChangeResponse)
def demote_from_admin(
    user_id: int,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = role_enforcer.demote_from_admin(db, user_id, admin.user_id, client_ip(request))
    return _role_change(user, RoleType.ADMIN, "Administrator role removed", admin)


@router.post("/users/{user_id}/revoke-sessions", response_model=SessionRevocationResponse)
def revoke_sessions(
    user_id: int,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Sign an identity out everywhere"""
    if user_service.get_user_by_id(db, user_id) is None:
        raise ResourceNotFoundError("User")
    count = session_service.revoke_all_sessions(
        db,
        user_id,
        reason="An administrator signed you out of all devices",
        actor_id=admin.user_id,
        ip_address=client_ip(request),
    )
    return SessionRevocationResponse(user_id=user_id, revoked_count=count)


@router.post("/tokens/sweep", response_model=SweepResponse, status_code=status.HTTP_200_OK)
def sweep_expired_tokens(
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete expired refresh tokens now instead of waiting for the worker"""
    return SweepResponse(deleted_count=session_service.sweep_expired(db))


@router.get("/audit", response_model=List[AuditEventResponse])
def get_audit_events(
    limit: int = Query(100, ge=1, le=500),
    action: Optional[str] = None,
    target_id: Optional[str] = None,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """List recent audit trail entries."""
    events = audit_service.list_events(db, action=action, target_id=target_id, limit=limit)
    return [
        AuditEventResponse(
            id=ev.id,
            user_id=ev.user_id,
            actor_email=ev.user.email if ev.user else None,
            action=ev.action,
            target_type=ev.target_type,
            target_id=ev.target_id,
            ip_address=ev.ip_address,
            metadata=audit_service.metadata_of(ev),
            created_at=ev.created_at,
        )
        for ev in events
    ]
