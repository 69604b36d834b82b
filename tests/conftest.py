"""Pytest configuration and fixtures."""

import os

# Must be set before the app modules read their settings
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SESSION_CLEANUP_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timedelta  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
import redis.exceptions  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.models.session import UserSession  # noqa: E402, F401
from app.models.user import User  # noqa: E402, F401
from app.services.auth import AuthService, ClientMeta, get_auth_service  # noqa: E402
from app.services.credentials import CredentialStore  # noqa: E402
from app.services.email import EmailService  # noqa: E402
from app.services.jwt import JWTService  # noqa: E402
from app.services.profile import ProfileService, get_profile_service  # noqa: E402
from app.services.reset_tokens import ResetTokenCache, get_reset_token_cache  # noqa: E402
from app.services.sessions import SessionStore, get_session_store  # noqa: E402

TEST_PASSWORD = "Password123"


class FakeRedis:
    """In-process stand-in for the slice of redis-py the reset-token cache uses.

    Expiry is driven by ``now``, which tests move forward with ``advance``.
    Setting ``fail_with`` makes every command raise that exception.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.fail_with: Exception | None = None
        self._data: dict[str, tuple[str, float | None]] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= self.now:
            del self._data[key]
            return None
        return entry

    def setex(self, name: str, time: int, value: str) -> bool:
        self._check()
        self._data[name] = (value, self.now + time)
        return True

    def get(self, name: str) -> str | None:
        self._check()
        entry = self._live(name)
        return entry[0] if entry else None

    def delete(self, *names: str) -> int:
        self._check()
        removed = 0
        for name in names:
            if self._live(name) is not None:
                del self._data[name]
                removed += 1
        return removed

    def ttl(self, name: str) -> int:
        self._check()
        entry = self._live(name)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return int(entry[1] - self.now)

    def ping(self) -> bool:
        self._check()
        return True


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Create an in-memory SQLite database for tests."""
    engine, factory = make_session_factory()
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="fake_redis")
def fake_redis_fixture() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(name="reset_cache")
def reset_cache_fixture(fake_redis: FakeRedis) -> ResetTokenCache:
    return ResetTokenCache(fake_redis, ttl_seconds=3600, used_ttl_seconds=300)


@pytest.fixture(name="session_store")
def session_store_fixture() -> SessionStore:
    return SessionStore(ttl_hours=24, remember_me_ttl_hours=720)


@pytest.fixture(name="email_service")
def email_service_fixture() -> MagicMock:
    return MagicMock(spec=EmailService)


@pytest.fixture(name="jwt_service")
def jwt_service_fixture() -> JWTService:
    return JWTService(secret_key="test-secret-key", algorithm="HS256", ttl_seconds=3600)


@pytest.fixture(name="auth_service")
def auth_service_fixture(
    session_store: SessionStore,
    reset_cache: ResetTokenCache,
    jwt_service: JWTService,
    email_service: MagicMock,
) -> AuthService:
    return AuthService(
        credentials=CredentialStore(),
        sessions=session_store,
        reset_tokens=reset_cache,
        jwt_service=jwt_service,
        email_service=email_service,
        bcrypt_rounds=4,
        invalidate_sessions_on_reset=True,
    )


@pytest.fixture(name="profile_service")
def profile_service_fixture(auth_service: AuthService) -> ProfileService:
    return ProfileService(auth=auth_service)


@pytest.fixture(name="client")
def client_fixture(
    db_session: Session,
    auth_service: AuthService,
    profile_service: ProfileService,
    session_store: SessionStore,
    reset_cache: ResetTokenCache,
):
    """Create a test client wired to the in-memory database and fake cache."""
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    app.dependency_overrides[get_profile_service] = lambda: profile_service
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_reset_token_cache] = lambda: reset_cache
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session, auth_service: AuthService) -> dict:
    """Register a test user and return its id, credentials and session token."""
    result = auth_service.register(
        db_session,
        "test@example.com",
        TEST_PASSWORD,
        username="tester",
        display_name="Test User",
        client=ClientMeta(user_agent="pytest", ip_address="127.0.0.1"),
    )
    return {
        "user_id": result.user.id,
        "email": result.user.email,
        "password": TEST_PASSWORD,
        "session_id": result.session_id,
        "session_token": result.session_token,
    }


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def issue_reset_token(auth_service: AuthService, db: Session, email: str) -> str:
    """Run forgot-password and return the token handed to the email service."""
    auth_service.email.send_password_reset.reset_mock()
    auth_service.forgot_password(db, email)
    to_email, token = auth_service.email.send_password_reset.call_args.args
    assert to_email == email
    return token


def redis_down() -> redis.exceptions.ConnectionError:
    return redis.exceptions.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
