"""Periodic sweep of expired and revoked sessions."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.clock import utcnow
from app.services.sessions import SessionStore

logger = logging.getLogger("brickvault")


class SessionCleanupService:
    """Owns a background thread that calls SessionStore.cleanup_expired on an interval.

    Constructed once at application startup and stopped at shutdown; there is
    no module-level instance.
    """

    def __init__(self, session_factory: Callable[[], Session], store: SessionStore) -> None:
        self.session_factory = session_factory
        self.store = store
        self.interval_hours: float | None = None
        self.last_run_at: datetime | None = None
        self.last_deleted: int | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self, interval_hours: float = 24) -> None:
        """Run one cleanup now, then every ``interval_hours``. No-op if already running."""
        with self._lock:
            if self.is_running:
                logger.warning("Session cleanup service already running")
                return
            if self._thread is not None:
                # A previous loop timed out in stop() mid-sweep; let it finish first
                self._thread.join()
            self.interval_hours = interval_hours
            self._stop_event = threading.Event()
            self.cleanup()
            self._thread = threading.Thread(
                target=self._run,
                args=(interval_hours * 3600, self._stop_event),
                name="session-cleanup",
                daemon=True,
            )
            self._thread.start()
        next_run = utcnow() + timedelta(hours=interval_hours)
        logger.info(
            "Session cleanup service started interval_hours=%s next_cleanup=%s", interval_hours, next_run.isoformat()
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            if self._thread is None:
                return
            self._stop_event.set()
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Session cleanup service stopping, a sweep is still in progress")
                return
            self._thread = None
        logger.info("Session cleanup service stopped")

    def _run(self, interval_seconds: float, stop_event: threading.Event) -> None:
        while not stop_event.wait(interval_seconds):
            self.cleanup()

    def cleanup(self) -> int:
        """Delete expired/inactive sessions. Never raises; failures are logged and count as 0."""
        logger.info("Starting session cleanup...")
        try:
            db = self.session_factory()
            try:
                deleted = self.store.cleanup_expired(db)
            finally:
                db.close()
        except Exception:
            logger.exception("Session cleanup failed")
            return 0
        self.last_run_at = utcnow()
        self.last_deleted = deleted
        logger.info("Session cleanup completed deleted_sessions=%s", deleted)
        return deleted

    def status(self) -> dict:
        return {
            "running": self.is_running,
            "interval_hours": self.interval_hours,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_deleted": self.last_deleted,
        }
