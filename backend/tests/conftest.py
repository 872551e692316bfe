import os

# Settings and the engine are built at import time; point them at SQLite first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_INIT_MODE", "create_all")
os.environ.setdefault("REFRESH_TOKEN_CLEANUP_ENABLED", "false")
os.environ.setdefault("ADMIN_EMAIL", "")
os.environ.setdefault("SMTP_HOST", "")

from datetime import datetime, timedelta
from typing import Iterable, List, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from authcore.core.database import Base
from authcore.core.security import AccessTokenIssuer, get_password_hash
from authcore.models.role import RoleType
from authcore.models.user import User
from authcore.services.notifier import IncidentNotifier
from authcore.services.origin_guard import OriginGuard
from authcore.services.rate_limiter import rate_limiter
from authcore.services.role_service import role_enforcer
from authcore.services.session_service import SessionRotationService
from authcore.services.token_ledger import RefreshTokenLedger
from authcore.services.user_service import UserService

TEST_SECRET = "test-secret-key-with-enough-length-0123456789"
PASSWORD = "correct-horse-battery"
_PASSWORD_HASH = get_password_hash(PASSWORD)


class MutableClock:
    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, 0)) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingNotifier(IncidentNotifier):
    def __init__(self, fail: bool = False) -> None:
        self.events: List[Tuple[str, int, object]] = []
        self.fail = fail

    def _record(self, kind, recipient, detail):
        if self.fail:
            raise RuntimeError("mail server down")
        self.events.append((kind, recipient.user_id, detail))

    def notify_replay_detected(self, recipient, fingerprint):
        self._record("replay_detected", recipient, fingerprint)

    def notify_all_sessions_revoked(self, recipient, reason):
        self._record("all_sessions_revoked", recipient, reason)

    def notify_new_device_login(self, recipient, fingerprint):
        self._record("new_device_login", recipient, fingerprint)

    def kinds(self) -> List[str]:
        return [kind for kind, _, _ in self.events]


def _make_session():
    engine = create_engine("sqlite:///:memory:")
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


def make_user(db, email: str, roles: Iterable[RoleType] = (RoleType.USER,), is_active: bool = True) -> User:
    user = User(email=email, name=email.split("@")[0], password_hash=_PASSWORD_HASH, is_active=is_active)
    for role in roles:
        user.add_role(role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def build_service(clock, notifier, mode: str = "flexible", block: bool = False) -> SessionRotationService:
    return SessionRotationService(
        issuer=AccessTokenIssuer(TEST_SECRET, ttl_seconds=900, clock=clock),
        ledger=RefreshTokenLedger(clock=clock, ttl_seconds=7 * 24 * 3600),
        guard=OriginGuard(mode),
        notifier=notifier,
        users=UserService(clock=clock),
        block_on_origin_mismatch=block,
    )


@pytest.fixture(autouse=True)
def _reset_shared_state():
    role_enforcer.cache.clear()
    rate_limiter.reset()
    yield
    role_enforcer.cache.clear()
    rate_limiter.reset()


@pytest.fixture
def db():
    session = _make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(clock, notifier):
    return build_service(clock, notifier)
