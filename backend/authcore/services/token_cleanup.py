"""Background sweep of expired refresh tokens."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from authcore.config import settings
from authcore.core.database import SessionLocal, unit_of_work
from authcore.core.metrics import CLEANUP_WORKER_UP, TOKENS_SWEPT
from authcore.services.token_ledger import RefreshTokenLedger

logger = logging.getLogger(__name__)


class TokenCleanupWorker:
    """Deletes expired refresh tokens on a fixed interval. Revoked rows are kept until they expire."""

    def __init__(
        self,
        ledger: Optional[RefreshTokenLedger] = None,
        interval_seconds: Optional[float] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ) -> None:
        self.ledger = ledger or RefreshTokenLedger()
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.REFRESH_TOKEN_CLEANUP_INTERVAL_SECONDS
        )
        self._session_factory = session_factory
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._swept_count: int = 0
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="token-cleanup", daemon=True)
        self._thread.start()
        CLEANUP_WORKER_UP.set(1)
        logger.info("Token cleanup worker started (interval=%ss)", self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        CLEANUP_WORKER_UP.set(0)
        logger.info("Token cleanup worker stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "swept_count": self._swept_count,
        }

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as exc:
                logger.exception("Token cleanup sweep failed: %s", exc)
            self._heartbeat = time.time()
            self._stop_event.wait(max(1.0, self.interval_seconds))

    def run_once(self) -> int:
        """Run a single sweep in its own session and return the number of rows deleted."""
        db = self._session_factory()
        try:
            with unit_of_work(db):
                deleted = self.ledger.sweep_expired(db)
        finally:
            db.close()

        with self._lock:
            self._swept_count += deleted
        TOKENS_SWEPT.inc(deleted)
        if deleted:
            logger.info("Deleted %d expired refresh tokens", deleted)
        return deleted


token_cleanup_worker = TokenCleanupWorker()
