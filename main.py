"""BrickVault - LEGO collection tracker API."""

import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.database import SessionLocal, get_db
from app.errors import AppError, StoreTimeoutError, StoreUnavailableError
from app.log import configure_logging
from app.rate_limit import limiter
from app.routers import auth_router, profile_router, sessions_router
from app.services.credentials import get_credential_store
from app.services.reset_tokens import ResetTokenCache, get_reset_token_cache
from app.services.session_cleanup import SessionCleanupService
from app.services.sessions import get_session_store

settings = get_settings()

# Logging
logger = configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for warning in settings.validate():
        logger.warning("Config: %s", warning)

    cleanup = SessionCleanupService(SessionLocal, get_session_store())
    app.state.session_cleanup = cleanup
    if settings.SESSION_CLEANUP_ENABLED:
        cleanup.start(settings.SESSION_CLEANUP_INTERVAL_HOURS)
    try:
        yield
    finally:
        cleanup.stop()


app = FastAPI(title="BrickVault", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    MAX_BODY_SIZE = 1024 * 1024  # 1MB, auth payloads are tiny

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_BODY_SIZE:
            return JSONResponse(status_code=413, content={"success": False, "error": "payload_too_large"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PATHS = {"/api/v1/auth/", "/api/v1/sessions", "/api/v1/profile/password"}

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        # Log sensitive operations
        path = request.url.path
        method = request.method
        if method in ("POST", "PUT", "DELETE") and any(path.startswith(p) for p in self.AUDIT_PATHS):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(AuditLogMiddleware)

# API routers
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(sessions_router)


# --- Rate limit error handler ---
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Handle rate limit exceeded."""
    return JSONResponse(
        status_code=429,
        content={"success": False, "error": "rate_limited", "message": "Rate limit exceeded. Try again later."},
    )


# --- Application errors -> JSON envelope ---
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map typed service errors onto their status code."""
    if isinstance(exc, (StoreTimeoutError, StoreUnavailableError)):
        logger.error(
            "Infrastructure error %s on %s %s: %s",
            exc.error_code,
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
    content = {"success": False, "error": exc.error_code, "message": exc.message}
    if exc.details and (settings.DEBUG or not settings.is_production):
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle framework HTTP exceptions with the same envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": "http_error", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log with traceback, expose detail only outside production."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    content = {"success": False, "error": "internal_error", "message": "An unexpected error occurred"}
    if settings.DEBUG or not settings.is_production:
        content["details"] = {"type": exc.__class__.__name__, "message": str(exc)}
    return JSONResponse(status_code=500, content=content)


# --- Health check ---
@app.get("/api/health")
def health_check(
    request: Request,
    db: Session = Depends(get_db),
    cache: ResetTokenCache = Depends(get_reset_token_cache),
) -> dict:
    """Health check endpoint with database and cache probes."""
    checks = {}
    try:
        checks["database"] = get_credential_store().ping(db)
    except AppError as e:
        logger.error("Health check: database probe failed (%s)", e.error_code)
        checks["database"] = False
    try:
        checks["cache"] = cache.ping()
    except AppError as e:
        logger.error("Health check: cache probe failed (%s)", e.error_code)
        checks["cache"] = False

    cleanup = getattr(request.app.state, "session_cleanup", None)
    return {
        "status": "ok" if all(checks.values()) else "degraded",
        "app": "brickvault",
        "version": "0.1.0",
        "checks": checks,
        "session_cleanup": cleanup.status() if cleanup else None,
    }
