"""
api/main.py -- FastAPI application entry point for CourseGate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every component from one Settings value and hangs it on
app.state; request handlers and auth dependencies only ever reach
collaborators through app.state, which is what lets the tests swap in
in-memory stores.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.courses import router as courses_router
from api.routes.v1.users import router as users_router
from auth.authenticator import Authenticator
from auth.errors import (
    AccountDeactivatedError,
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    ResourceNotFoundError,
    TokenExpiredError,
    TokenMismatchError,
    UnauthenticatedError,
    UserGoneError,
)
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenIssuer
from catalog.store import CatalogStore
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("coursegate.api")

# ---------------------------------------------------------------------------
# AuthError -> HTTP status. Exhaustive over auth.errors; tests/test_errors.py
# fails if a new AuthError subclass is added without an entry here.
# ---------------------------------------------------------------------------

AUTH_ERROR_STATUS: dict[type[AuthError], int] = {
    ConflictError: 400,
    InvalidCredentialsError: 401,
    AccountDeactivatedError: 401,
    UnauthenticatedError: 401,
    TokenExpiredError: 401,
    InvalidTokenError: 401,
    UserGoneError: 401,
    TokenMismatchError: 401,
    ForbiddenError: 403,
    ResourceNotFoundError: 404,
}


def status_for(exc: AuthError) -> int:
    return AUTH_ERROR_STATUS[type(exc)]


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores and auth components on startup; dispose engines on shutdown.

    Both stores share DATABASE_URL; each creates only its own tables.
    """
    settings = get_settings()
    logger.info("CourseGate API starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.catalog = CatalogStore(settings.database_url)
    app.state.issuer = TokenIssuer(settings)
    app.state.authenticator = Authenticator(app.state.user_store, app.state.issuer)
    app.state.sessions = SessionManager(
        app.state.user_store,
        app.state.issuer,
        app.state.authenticator,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    logger.info(
        "Auth initialized (access_ttl=%ds, refresh_ttl=%ds, bcrypt_rounds=%d)",
        settings.access_token_expire_seconds,
        settings.refresh_token_expire_seconds,
        settings.bcrypt_rounds,
    )

    yield

    app.state.catalog.close()
    app.state.user_store.close()
    logger.info("CourseGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CourseGate API",
    description="Session and authorization core for the e-learning platform.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

_settings = get_settings()

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(courses_router, prefix="/api/v1", tags=["Courses"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an expected auth failure verbatim with its mapped status.

    401 responses carry WWW-Authenticate so generic HTTP clients recognize a
    bearer challenge.
    """
    status_code = status_for(exc)
    response = _error_response(status_code, exc.code, exc.message)
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or params fail validation."""
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for HTTPException.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict); use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The exception is logged server-side only; the client receives a generic
    message with no internal detail.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus a database round-trip check. No auth, no rate limit."""
    components = {"app": "ok"}
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check database probe failed")
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)
