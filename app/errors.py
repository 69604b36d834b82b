"""Application error taxonomy and the store-error adapter.

Services raise ``AppError`` subclasses only. Exceptions native to SQLAlchemy,
the DBAPI driver or redis-py are converted in exactly one place,
``translate_store_error``, so nothing above the stores ever inspects SQLSTATE
codes or driver messages.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis.exceptions
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

logger = logging.getLogger("brickvault")

UNIQUE_VIOLATION = "23505"
QUERY_CANCELED = "57014"
DATA_EXCEPTION_CLASS = "22"


class AppError(Exception):
    """Base class for errors surfaced to callers with a status classification."""

    status_code: int = 400
    error_code: str = "bad_request"
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"
    default_message = "Validation failed"


class DuplicateKeyError(AppError):
    """A unique constraint rejected the write."""

    status_code = 409
    error_code = "duplicate_key"
    default_message = "Duplicate entry"


class AlreadyExistsError(DuplicateKeyError):
    """A duplicate as seen by callers of the services."""

    status_code = 409
    error_code = "already_exists"
    default_message = "User with this email already exists"


class InvalidCredentialsError(AppError):
    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid email or password"


class AccountDisabledError(AppError):
    status_code = 403
    error_code = "account_disabled"
    default_message = "Account is deactivated"


class NotAuthenticatedError(AppError):
    status_code = 401
    error_code = "not_authenticated"
    default_message = "Not authenticated"


class InvalidTokenError(AppError):
    status_code = 400
    error_code = "invalid_token"
    default_message = "Invalid or expired reset token"


class TokenExpiredError(AppError):
    status_code = 400
    error_code = "token_expired"
    default_message = "Invalid or expired reset token"


class TokenAlreadyUsedError(AppError):
    status_code = 400
    error_code = "token_already_used"
    default_message = "Invalid or already used reset token"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"
    default_message = "Resource not found"


class StoreTimeoutError(AppError):
    status_code = 503
    error_code = "store_timeout"
    default_message = "A backing store did not respond in time"


class StoreUnavailableError(AppError):
    status_code = 503
    error_code = "store_unavailable"
    default_message = "A backing store is unavailable"


def _sqlstate(error: BaseException) -> str | None:
    orig = getattr(error, "orig", None)
    # psycopg 3 exposes .sqlstate, psycopg2 exposes .pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_store_error(error: Exception) -> AppError:
    """Map a SQLAlchemy/DBAPI or redis-py exception onto the error taxonomy."""
    if isinstance(error, AppError):
        return error

    if isinstance(error, sa_exc.IntegrityError):
        message = str(getattr(error, "orig", error)).lower()
        if _sqlstate(error) == UNIQUE_VIOLATION or "unique constraint" in message:
            return DuplicateKeyError(details={"db_error": str(getattr(error, "orig", error))})
        return ValidationError("Integrity error", details={"db_error": str(getattr(error, "orig", error))})

    if isinstance(error, sa_exc.TimeoutError):
        return StoreTimeoutError("Timed out waiting for a database connection")

    if isinstance(error, sa_exc.DataError) or (_sqlstate(error) or "").startswith(DATA_EXCEPTION_CLASS):
        return ValidationError(
            "Value rejected by the database", details={"db_error": str(getattr(error, "orig", error))}
        )

    if isinstance(error, sa_exc.DBAPIError):
        message = str(getattr(error, "orig", error)).lower()
        if _sqlstate(error) == QUERY_CANCELED or "statement timeout" in message or "timed out" in message:
            return StoreTimeoutError("Database statement timed out")
        if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError)) or error.connection_invalidated:
            return StoreUnavailableError("Database is unavailable")

    if isinstance(error, redis.exceptions.TimeoutError):
        return StoreTimeoutError("Cache did not respond in time")

    if isinstance(error, redis.exceptions.ConnectionError):
        return StoreUnavailableError("Cache is unavailable")

    return StoreUnavailableError(details={"type": error.__class__.__name__, "message": str(error)})


@contextmanager
def store_errors(db: Session | None = None) -> Iterator[None]:
    """Roll back ``db`` and re-raise store failures as taxonomy errors."""
    try:
        yield
    except (sa_exc.SQLAlchemyError, redis.exceptions.RedisError) as e:
        if db is not None:
            db.rollback()
        translated = translate_store_error(e)
        if isinstance(translated, (StoreTimeoutError, StoreUnavailableError)):
            logger.error("Store failure: %s (%s)", translated.message, e.__class__.__name__, exc_info=e)
        raise translated from e
