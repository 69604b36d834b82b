"""Tests for settings and engine options."""

import pytest

from app.config import Settings
from app.database import database_url, engine_options


def test_generated_secret_warns(monkeypatch):
    monkeypatch.setattr(Settings, "JWT_SECRET_KEY", "")
    settings = Settings()
    assert settings.JWT_SECRET_KEY
    assert any("JWT_SECRET_KEY" in w for w in settings.validate())


def test_production_sqlite_warns(monkeypatch):
    monkeypatch.setattr(Settings, "APP_ENV", "production")
    monkeypatch.setattr(Settings, "DATABASE_URL", "sqlite:///./prod.db")
    monkeypatch.setattr(Settings, "JWT_SECRET_KEY", "set")
    warnings = Settings().validate()
    assert any("SQLite" in w for w in warnings)


def test_postgres_engine_options(monkeypatch):
    monkeypatch.setattr(Settings, "DATABASE_URL", "postgresql+psycopg://app@db/brickvault")
    monkeypatch.setattr(Settings, "DB_POOL_SIZE", 20)
    monkeypatch.setattr(Settings, "DB_STATEMENT_TIMEOUT_MS", 10000)
    options = engine_options(Settings())
    assert options["pool_size"] == 20
    assert options["pool_pre_ping"] is True
    assert options["connect_args"]["options"] == "-c statement_timeout=10000"


def test_sqlite_engine_options(monkeypatch):
    monkeypatch.setattr(Settings, "DATABASE_URL", "sqlite:///:memory:")
    options = engine_options(Settings())
    assert "pool_size" not in options
    assert options["connect_args"]["check_same_thread"] is False


@pytest.mark.parametrize(
    "configured, expected",
    [
        ("postgresql://app@db/brickvault", "postgresql+psycopg://app@db/brickvault"),
        ("postgres://app@db/brickvault", "postgresql+psycopg://app@db/brickvault"),
        ("postgresql+psycopg://app@db/brickvault", "postgresql+psycopg://app@db/brickvault"),
        ("sqlite:///./brickvault.db", "sqlite:///./brickvault.db"),
    ],
)
def test_database_url_pins_psycopg3(monkeypatch, configured, expected):
    monkeypatch.setattr(Settings, "DATABASE_URL", configured)
    assert database_url(Settings()) == expected
