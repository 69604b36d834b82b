"""Tests for the background session cleanup service."""

import threading
import time
from unittest.mock import MagicMock

from conftest import FakeClock
from sqlalchemy import func, select

from app.errors import StoreUnavailableError
from app.models.session import UserSession
from app.services.credentials import CredentialStore
from app.services.session_cleanup import SessionCleanupService
from app.services.sessions import SessionStore


def _seed(session_factory, clock: FakeClock, expired: int, live: int) -> SessionStore:
    store = SessionStore(ttl_hours=24, remember_me_ttl_hours=720, clock=clock)
    db = session_factory()
    try:
        user = CredentialStore().create(db, "sweep@example.com", "hash", username="sweeper")
        for _ in range(expired):
            store.create(db, user_id=user.id)
        clock.advance(hours=30)
        for _ in range(live):
            store.create(db, user_id=user.id)
    finally:
        db.close()
    return store


def _count(session_factory) -> int:
    db = session_factory()
    try:
        return db.scalar(select(func.count()).select_from(UserSession))
    finally:
        db.close()


class TestCleanup:
    def test_cleanup_deletes_expired(self, session_factory):
        store = _seed(session_factory, FakeClock(), expired=2, live=1)
        service = SessionCleanupService(session_factory, store)
        assert service.cleanup() == 2
        assert _count(session_factory) == 1
        assert service.status()["last_deleted"] == 2
        assert service.status()["last_run_at"] is not None

    def test_cleanup_failure_is_swallowed(self, session_factory):
        store = MagicMock(spec=SessionStore)
        store.cleanup_expired.side_effect = StoreUnavailableError()
        service = SessionCleanupService(session_factory, store)
        assert service.cleanup() == 0
        assert service.last_run_at is None

    def test_session_factory_failure_is_swallowed(self):
        def factory():
            raise RuntimeError("pool exhausted")

        service = SessionCleanupService(factory, MagicMock(spec=SessionStore))
        assert service.cleanup() == 0


class TestLifecycle:
    def test_start_runs_immediately_and_stop(self, session_factory):
        store = _seed(session_factory, FakeClock(), expired=3, live=0)
        service = SessionCleanupService(session_factory, store)
        service.start(interval_hours=24)
        try:
            assert service.is_running
            assert service.last_deleted == 3
            assert service.status()["interval_hours"] == 24
        finally:
            service.stop()
        assert not service.is_running
        assert _count(session_factory) == 0

    def test_start_is_idempotent(self, session_factory):
        store = MagicMock(spec=SessionStore)
        store.cleanup_expired.return_value = 0
        service = SessionCleanupService(session_factory, store)
        service.start(interval_hours=24)
        try:
            first_thread = service._thread
            service.start(interval_hours=1)
            assert service._thread is first_thread
            assert service.interval_hours == 24
            assert store.cleanup_expired.call_count == 1
        finally:
            service.stop()

    def test_runs_on_interval(self, session_factory):
        store = MagicMock(spec=SessionStore)
        store.cleanup_expired.return_value = 0
        service = SessionCleanupService(session_factory, store)
        # 0.01s interval
        service.start(interval_hours=0.01 / 3600)
        try:
            time.sleep(0.2)
        finally:
            service.stop()
        assert store.cleanup_expired.call_count >= 2

    def test_stop_without_start(self, session_factory):
        service = SessionCleanupService(session_factory, MagicMock(spec=SessionStore))
        service.stop()
        assert not service.is_running

    def test_restart_after_stop(self, session_factory):
        store = MagicMock(spec=SessionStore)
        store.cleanup_expired.return_value = 0
        service = SessionCleanupService(session_factory, store)
        service.start(interval_hours=24)
        service.stop()
        service.start(interval_hours=24)
        try:
            assert service.is_running
        finally:
            service.stop()

    def test_restart_during_slow_sweep_keeps_one_loop(self, session_factory):
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def sweep(db):
            calls.append(1)
            if len(calls) > 1 and not release.is_set():
                entered.set()
                release.wait(5)
            return 0

        store = MagicMock(spec=SessionStore)
        store.cleanup_expired.side_effect = sweep
        service = SessionCleanupService(session_factory, store)
        service.start(interval_hours=0.01 / 3600)
        assert entered.wait(2)

        service.stop(timeout=0.1)
        assert not service.is_running

        threading.Timer(0.2, release.set).start()
        service.start(interval_hours=24)
        try:
            alive = [t for t in threading.enumerate() if t.name == "session-cleanup" and t.is_alive()]
            assert len(alive) == 1
            assert service.is_running
        finally:
            service.stop()
        assert not service.is_running
