"""
api/main.py -- FastAPI application entry point for SessionKeeper.

A local control surface over one AuthCore: a desktop shell, a browser UI on
localhost, or a script can log in, check the session, and log out over HTTP.
It is a host adapter, not a multi-user web service -- there is exactly one
session per running process, as in any single-user interactive client.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan is the composition root: it builds the credential store, the
two-tier key-value store, the codec, SessionManager, AuthCore and AuthGuard,
and tears them down symmetrically on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.codec import build_codec
from auth.core import AuthCore
from auth.events import LoggingEventSink
from auth.guard import AuthGuard
from auth.session import SessionManager
from auth.store import CredentialStore
from core.config import get_settings
from storage.store import TieredKeyValueStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionkeeper.api")


# ---------------------------------------------------------------------------
# Lifespan -- composition root
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the session core on startup and release it on shutdown.

    Startup order matters:
      1. Stores first -- nothing else can run without them.
      2. Codec + SessionManager -- need the key-value store.
      3. AuthCore last -- needs credentials and sessions; start() resumes the
         inactivity monitor if a remembered session was restored.
    """
    settings = get_settings()
    logger.info("SessionKeeper API starting up")

    app.state.credential_store = CredentialStore(settings.credentials_db_url)
    app.state.kv_store = TieredKeyValueStore(settings.storage_db_path)
    app.state.codec = build_codec(settings)
    sessions = SessionManager(
        app.state.kv_store,
        app.state.codec,
        session_timeout_seconds=settings.session_timeout_seconds,
    )
    app.state.auth_core = AuthCore.from_settings(settings, app.state.credential_store, sessions, LoggingEventSink())
    app.state.guard = AuthGuard(sessions)
    app.state.auth_core.start()
    logger.info(
        "Session core initialized (codec=%s, credentials=%d)",
        type(app.state.codec).__name__,
        app.state.credential_store.count(),
    )

    yield

    # Shutdown
    app.state.auth_core.close()
    app.state.kv_store.close()
    app.state.credential_store.close()
    logger.info("SessionKeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SessionKeeper API",
    description="Session and credential lifecycle for a single-user client.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost"],
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
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Dependencies raise HTTPException with a dict detail; use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth: local supervisors poll this.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the durable tier answers."""
    storage_ok = request.app.state.kv_store.ping()
    return HealthResponse(
        status="healthy" if storage_ok else "degraded",
        version=__version__,
        components={"app": "ok", "storage": "ok" if storage_ok else "error"},
    )
