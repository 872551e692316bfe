"""User service - registration, credential checks and identity lookups"""

from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Tuple
from authcore.core.clock import SystemClock, system_clock
from authcore.models.user import User
from authcore.schemas.user import RegisterRequest
from authcore.core.security import get_password_hash, verify_password
from authcore.core.exceptions import (
    InvalidCredentialsError,
    DuplicateRegistrationError,
)
from authcore.models.role import RoleType
from authcore.services.role_service import RoleGrantRequest, determine_initial_roles, role_enforcer
import logging

logger = logging.getLogger(__name__)

# Compared against when the email is unknown so both failure paths cost one bcrypt check.
_DUMMY_HASH = get_password_hash("dummy-password-for-timing")


class UserService:
    """Service for user management"""

    def __init__(self, clock: SystemClock = system_clock) -> None:
        self.clock = clock

    @staticmethod
    def normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    def register_user(self, db: Session, request: RegisterRequest) -> User:
        """
        Register a new identity holding only the USER role

        Args:
            db: Database session
            request: Registration data

        Returns:
            Created user
        """
        email = self.normalize_email(request.email)
        duplicates = self._find_duplicates(db, email, request.mobile_number)
        if duplicates:
            logger.warning("Duplicate registration attempt detected: %s", sorted(duplicates))
            raise DuplicateRegistrationError(duplicates)

        user = User(
            email=email,
            name=request.name.strip(),
            mobile_number=request.mobile_number,
            password_hash=get_password_hash(request.password),
            is_active=True,
        )
        for role in determine_initial_roles():
            user.add_role(role)

        self.save(db, user)
        logger.info(f"User registered: id={user.id} roles={sorted(user.role_names)}")
        return user

    @staticmethod
    def _find_duplicates(db: Session, email: str, mobile_number: Optional[str]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if db.query(User).filter(func.lower(User.email) == email).first():
            errors["email"] = "Email is already registered"
        if mobile_number and db.query(User).filter(User.mobile_number == mobile_number).first():
            errors["mobile_number"] = "Mobile number is already registered"
        return errors

    def authenticate_user(self, db: Session, email: str, password: str) -> User:
        """
        Check credentials

        Args:
            db: Database session
            email: Email (any case)
            password: Password

        Returns:
            Authenticated user

        Raises:
            InvalidCredentialsError: same error for unknown email, wrong
            password or disabled account
        """
        user = self.get_user_by_email(db, email)

        if not user:
            verify_password(password, _DUMMY_HASH)
            raise InvalidCredentialsError()

        if not verify_password(password, user.password_hash) or not user.is_active:
            logger.info("Failed login for user_id=%s", user.id)
            raise InvalidCredentialsError()

        user.last_login = self.clock.now()
        db.flush()
        return user

    def bootstrap_admin(self, db: Session, email: str, password: str) -> Optional[User]:
        """
        Create the configured administrator on first start

        The account is registered like any other and then climbs the role
        ladder one rung at a time. Returns None when the email already exists.
        """
        if self.get_user_by_email(db, email):
            return None

        user = User(
            email=self.normalize_email(email),
            name="Administrator",
            password_hash=get_password_hash(password),
            is_active=True,
        )
        for role in determine_initial_roles():
            user.add_role(role)
        self.save(db, user)

        for role in (RoleType.EMPLOYEE, RoleType.MANAGER, RoleType.ADMIN):
            role_enforcer.grant(db, RoleGrantRequest(user.id, role))
        logger.info("Created admin user: id=%s", user.id)
        return user

    @staticmethod
    def save(db: Session, user: User) -> User:
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, db: Session, email: str) -> Optional[User]:
        """Get user by email, case-insensitively"""
        normalized = self.normalize_email(email)
        if not normalized:
            return None
        return db.query(User).filter(func.lower(User.email) == normalized).first()

    @staticmethod
    def list_users(db: Session, page: int = 0, size: int = 20) -> Tuple[List[User], int]:
        query = db.query(User)
        total = query.count()
        users = query.order_by(User.id).offset(page * size).limit(size).all()
        return users, total


# Singleton instance
user_service = UserService()
