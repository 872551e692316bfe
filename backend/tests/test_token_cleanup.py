from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from authcore.core.database import Base
from authcore.models.security import RefreshToken
from authcore.services.origin_guard import OriginFingerprint
from authcore.services.token_cleanup import TokenCleanupWorker
from authcore.services.token_ledger import RefreshTokenLedger

from conftest import MutableClock, make_user


def test_run_once_sweeps_expired_tokens(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'sweep.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    clock = MutableClock()
    ledger = RefreshTokenLedger(clock=clock, ttl_seconds=3600)
    db = SessionLocal()
    try:
        user = make_user(db, "alice@example.com")
        ledger.create(db, user, OriginFingerprint())
        db.commit()
        clock.advance(hours=2)
        survivor = ledger.create(db, user, OriginFingerprint())
        db.commit()
        survivor_token = survivor.token
    finally:
        db.close()

    worker = TokenCleanupWorker(ledger=ledger, interval_seconds=3600, session_factory=SessionLocal)
    assert worker.run_once() == 1
    assert worker.run_once() == 0
    assert worker.status()["swept_count"] == 1

    check = SessionLocal()
    try:
        assert [t.token for t in check.query(RefreshToken).all()] == [survivor_token]
    finally:
        check.close()
        engine.dispose()


def test_start_and_stop(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'idle.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    worker = TokenCleanupWorker(
        ledger=RefreshTokenLedger(clock=MutableClock(), ttl_seconds=60),
        interval_seconds=3600,
        session_factory=SessionLocal,
    )
    worker.start()
    try:
        assert worker.is_running()
    finally:
        worker.stop()
    assert not worker.is_running()
    engine.dispose()


class _FlakyLedger(RefreshTokenLedger):
    """Fails the first sweep, then stops the worker on the second."""

    def __init__(self, worker_ref):
        super().__init__(clock=MutableClock(), ttl_seconds=60)
        self.calls = 0
        self._worker_ref = worker_ref

    def sweep_expired(self, db):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("unexpected failure")
        self._worker_ref[0]._stop_event.set()
        return 0


def test_loop_survives_a_failing_sweep(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'flaky.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    worker_ref = []
    ledger = _FlakyLedger(worker_ref)
    worker = TokenCleanupWorker(ledger=ledger, interval_seconds=0, session_factory=SessionLocal)
    worker_ref.append(worker)

    worker._run_loop()

    assert ledger.calls == 2
    assert worker.status()["last_heartbeat"] > 0
    engine.dispose()
