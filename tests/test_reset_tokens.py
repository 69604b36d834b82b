"""Tests for reset-token signing and the redemption cache."""

import json
from datetime import datetime, timedelta, timezone

import pytest
import redis.exceptions
from conftest import FakeRedis, redis_down
from jose import jwt

from app.errors import StoreTimeoutError, StoreUnavailableError
from app.services.jwt import PASSWORD_RESET_TYPE, JWTService, TokenFailure
from app.services.reset_tokens import ResetTokenCache, ResetTokenRecord

SECRET = "test-secret-key"


class TestResetTokenCache:
    def test_store_and_get(self, reset_cache: ResetTokenCache, fake_redis: FakeRedis):
        reset_cache.store("tok-1", user_id=7, email="a@example.com")
        record = reset_cache.get("tok-1")
        assert record.user_id == 7
        assert record.email == "a@example.com"
        assert record.used is False
        assert record.created_at.endswith("Z")

    def test_wire_format(self, reset_cache: ResetTokenCache, fake_redis: FakeRedis):
        reset_cache.store("tok-1", user_id=7, email="a@example.com")
        payload = json.loads(fake_redis.get("reset:tok-1"))
        assert payload["userId"] == 7
        assert payload["email"] == "a@example.com"
        assert payload["used"] is False
        assert "createdAt" in payload

    def test_absent_token(self, reset_cache: ResetTokenCache):
        assert reset_cache.get("missing") is None

    def test_record_expires(self, reset_cache: ResetTokenCache, fake_redis: FakeRedis):
        reset_cache.store("tok-1", user_id=7, email="a@example.com", ttl_seconds=60)
        fake_redis.advance(59)
        assert reset_cache.get("tok-1") is not None
        fake_redis.advance(1)
        assert reset_cache.get("tok-1") is None

    def test_mark_used_shortens_ttl(self, reset_cache: ResetTokenCache, fake_redis: FakeRedis):
        reset_cache.store("tok-1", user_id=7, email="a@example.com")
        assert reset_cache.mark_used("tok-1") is True
        record = reset_cache.get("tok-1")
        assert record.used is True
        assert record.used_at is not None
        assert fake_redis.ttl("reset:tok-1") == 300

    def test_mark_used_on_evicted_record(self, reset_cache: ResetTokenCache):
        assert reset_cache.mark_used("gone") is False

    def test_delete(self, reset_cache: ResetTokenCache):
        reset_cache.store("tok-1", user_id=7, email="a@example.com")
        assert reset_cache.delete("tok-1") is True
        assert reset_cache.delete("tok-1") is False
        assert reset_cache.get("tok-1") is None

    def test_connection_failure(self, reset_cache: ResetTokenCache, fake_redis: FakeRedis):
        fake_redis.fail_with = redis_down()
        with pytest.raises(StoreUnavailableError):
            reset_cache.get("tok-1")
        with pytest.raises(StoreUnavailableError):
            reset_cache.ping()

    def test_timeout(self, reset_cache: ResetTokenCache, fake_redis: FakeRedis):
        fake_redis.fail_with = redis.exceptions.TimeoutError("Timeout reading from socket")
        with pytest.raises(StoreTimeoutError):
            reset_cache.store("tok-1", user_id=7, email="a@example.com")

    def test_record_without_optional_fields(self):
        record = ResetTokenRecord.from_json('{"userId": "3", "email": "b@example.com"}')
        assert record.user_id == 3
        assert record.used is False
        assert record.used_at is None


class TestResetTokenSigning:
    def test_valid_token(self):
        service = JWTService(secret_key=SECRET)
        check = service.verify_reset_token(service.create_reset_token(42))
        assert check.ok is True
        assert check.user_id == 42
        assert check.claims["type"] == PASSWORD_RESET_TYPE
        assert check.failure is None

    def test_tokens_are_distinct(self):
        service = JWTService(secret_key=SECRET)
        assert service.create_reset_token(42) != service.create_reset_token(42)

    def test_expired(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = JWTService(secret_key=SECRET, ttl_seconds=3600, clock=lambda: issued).create_reset_token(42)
        check = JWTService(secret_key=SECRET).verify_reset_token(token)
        assert check.ok is False
        assert check.failure is TokenFailure.EXPIRED
        assert check.user_id is None

    def test_wrong_key(self):
        token = JWTService(secret_key="other").create_reset_token(42)
        check = JWTService(secret_key=SECRET).verify_reset_token(token)
        assert check.failure is TokenFailure.INVALID_SIGNATURE

    def test_not_a_jwt(self):
        check = JWTService(secret_key=SECRET).verify_reset_token("not.a.jwt")
        assert check.failure is TokenFailure.INVALID_SIGNATURE

    def test_wrong_type(self):
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"sub": "42", "type": "access", "exp": exp}, SECRET, algorithm="HS256")
        check = JWTService(secret_key=SECRET).verify_reset_token(token)
        assert check.failure is TokenFailure.WRONG_TYPE
