"""Role hierarchy enforcement: grant and revoke roles along the fixed ladder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Set, Tuple

from sqlalchemy.orm import Session

from authcore.config import settings
from authcore.core.database import unit_of_work
from authcore.core.exceptions import (
    HierarchyViolationError,
    ProtectedRoleViolationError,
    ResourceNotFoundError,
    RoleAlreadyHeldError,
    RoleNotHeldError,
)
from authcore.core.metrics import ROLE_CHANGES
from authcore.models.role import RoleType
from authcore.models.user import User
from authcore.services.audit_service import ROLE_GRANTED, ROLE_REVOKED, audit_service
from authcore.services.role_cache import RoleCache

logger = logging.getLogger(__name__)

# Role to grant -> roles of which at least one must already be held.
_PREREQUISITES: Dict[RoleType, Tuple[RoleType, ...]] = {
    RoleType.EMPLOYEE: (RoleType.USER,),
    RoleType.MANAGER: (RoleType.EMPLOYEE, RoleType.MANAGER),
    RoleType.ADMIN: (RoleType.MANAGER, RoleType.ADMIN),
}


def determine_initial_roles() -> Set[RoleType]:
    """Roles of a freshly registered identity: always exactly USER."""
    return {RoleType.USER}


@dataclass(frozen=True)
class RoleGrantRequest:
    user_id: int
    role: RoleType
    actor_id: Optional[int] = None
    ip_address: Optional[str] = None


class RoleHierarchyEnforcer:
    """Validate and apply role grants and revocations."""

    def __init__(self, cache: Optional[RoleCache] = None) -> None:
        self.cache = cache or RoleCache(
            ttl_seconds=settings.ROLE_CACHE_TTL_SECONDS,
            max_entries=settings.ROLE_CACHE_MAX_ENTRIES,
        )

    @staticmethod
    def _load_user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise ResourceNotFoundError("User")
        return user

    @staticmethod
    def check_hierarchy(user: User, role: RoleType) -> None:
        required = _PREREQUISITES.get(role, ())
        if required and not any(user.has_role(r) for r in required):
            raise HierarchyViolationError(role.value, required[0].value)

    def grant(self, db: Session, request: RoleGrantRequest) -> User:
        """
        Add a role to an identity.

        Raises:
            ProtectedRoleViolationError: role is USER
            ResourceNotFoundError: unknown identity
            RoleAlreadyHeldError: role already assigned
            HierarchyViolationError: ladder precondition unmet
        """
        role = RoleType(request.role)
        if role is RoleType.USER:
            raise ProtectedRoleViolationError(role.value)

        with unit_of_work(db):
            user = self._load_user(db, request.user_id)
            if user.has_role(role):
                raise RoleAlreadyHeldError(role.value)
            self.check_hierarchy(user, role)

            user.add_role(role)
            audit_service.log_event(
                db,
                user_id=request.actor_id,
                action=ROLE_GRANTED,
                target_type="user",
                target_id=str(user.id),
                ip_address=request.ip_address,
                metadata={"role": role.value},
                commit=False,
            )
        self.cache.invalidate(user.id)

        ROLE_CHANGES.labels("grant", role.value).inc()
        logger.info("Role %s granted to user_id=%s by actor_id=%s", role.value, user.id, request.actor_id)
        return user

    def revoke(self, db: Session, request: RoleGrantRequest) -> User:
        """
        Remove a role from an identity.

        A role that was never held is reported as RoleNotHeldError rather
        than ignored, so the audit trail only records real changes.
        """
        role = RoleType(request.role)
        if role is RoleType.USER:
            raise ProtectedRoleViolationError(role.value)

        with unit_of_work(db):
            user = self._load_user(db, request.user_id)
            if not user.has_role(role):
                raise RoleNotHeldError(role.value)

            user.remove_role(role)
            audit_service.log_event(
                db,
                user_id=request.actor_id,
                action=ROLE_REVOKED,
                target_type="user",
                target_id=str(user.id),
                ip_address=request.ip_address,
                metadata={"role": role.value},
                commit=False,
            )
        self.cache.invalidate(user.id)

        ROLE_CHANGES.labels("revoke", role.value).inc()
        logger.info("Role %s revoked from user_id=%s by actor_id=%s", role.value, user.id, request.actor_id)
        return user

    def promote_to_admin(self, db: Session, user_id: int, actor_id: Optional[int] = None,
                         ip_address: Optional[str] = None) -> User:
        user = self._load_user(db, user_id)
        if user.has_role(RoleType.ADMIN):
            logger.warning("user_id=%s is already ADMIN", user_id)
            raise RoleAlreadyHeldError(RoleType.ADMIN.value)
        return self.grant(db, RoleGrantRequest(user_id, RoleType.ADMIN, actor_id, ip_address))

    def demote_from_admin(self, db: Session, user_id: int, actor_id: Optional[int] = None,
                          ip_address: Optional[str] = None) -> User:
        return self.revoke(db, RoleGrantRequest(user_id, RoleType.ADMIN, actor_id, ip_address))

    def promote_next(self, db: Session, user_id: int, actor_id: Optional[int] = None,
                     ip_address: Optional[str] = None) -> Tuple[User, RoleType]:
        """Grant the rung above the highest role held."""
        user = self._load_user(db, user_id)
        if user.has_role(RoleType.ADMIN):
            raise RoleAlreadyHeldError(RoleType.ADMIN.value)
        highest = max(user.roles, key=lambda r: r.level, default=RoleType.USER)
        next_role = highest.next_role() or RoleType.EMPLOYEE
        return self.grant(db, RoleGrantRequest(user_id, next_role, actor_id, ip_address)), next_role

    def current_roles(self, db: Session, user_id: int) -> Optional[FrozenSet[str]]:
        """Role names currently held, served from the cache when possible."""

        def load() -> Optional[FrozenSet[str]]:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None or not user.is_active:
                return None
            return frozenset(user.role_names)

        return self.cache.get_or_load(user_id, load)


role_enforcer = RoleHierarchyEnforcer()
