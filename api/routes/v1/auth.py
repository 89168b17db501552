"""
api/routes/v1/auth.py -- Session endpoints over the AuthCore instance on app.state.

Routes:
  POST /api/v1/auth/login     -- login; 200 / 401 / 422 / 423
  POST /api/v1/auth/logout    -- always 200
  GET  /api/v1/auth/status    -- public: state + remaining attempts
  GET  /api/v1/auth/me        -- current principal (requires session)
  GET  /api/v1/auth/session   -- session stats (requires session)
  POST /api/v1/auth/activity  -- record user activity (requires session)

Security:
  [H2] POST /login is rate-limited per client IP on top of the core's
       attempt-counter lockout.
  [C1] Unknown identifier and wrong secret share one response.
  [M5] Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ActivityResponse,
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    MeResponse,
    SessionStatsResponse,
)
from auth.core import AuthCore
from auth.dependencies import require_session
from auth.errors import LoginFailure
from auth.models import Principal
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- logout is idempotent and needs no prior auth
# - GET  /api/v1/auth/status:    public -- login form shows lockout state before submit
# - GET  /api/v1/auth/me:        requires session (require_session)
# - GET  /api/v1/auth/session:   requires session (require_session)
# - POST /api/v1/auth/activity:  requires session (require_session)
router = APIRouter()

_FAILURE_STATUS = {
    LoginFailure.invalid_identifier_format: (422, "Identifier must be an e-mail address."),
    LoginFailure.invalid_credentials: (401, "Invalid identifier or secret."),
    LoginFailure.account_locked: (423, "Too many failed attempts. Login is locked."),
}


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate and open a session.

    remember=true also writes the durable tier so the session survives a
    restart of the host process.
    """
    auth_core: AuthCore = request.app.state.auth_core
    result = auth_core.login(body.identifier, body.secret, persist=body.remember)

    if not result.ok:
        status_code, message = _FAILURE_STATUS[result.reason]
        resp = JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=ErrorDetail(
                    code=result.reason.value,
                    message=message,
                    detail=f"remaining_attempts={auth_core.remaining_attempts}",
                )
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    resp = JSONResponse(status_code=200, content=LoginResponse.from_result(result).model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> LogoutResponse:
    """End the current session. Returns ok even when nobody was logged in."""
    auth_core: AuthCore = request.app.state.auth_core
    result = auth_core.logout()
    return LogoutResponse(ok=result.ok)


@router.get("/auth/status")
def status(request: Request) -> dict:
    """Return the core's state and how many attempts remain before lockout."""
    auth_core: AuthCore = request.app.state.auth_core
    return {
        "state": auth_core.state.value,
        "is_authenticated": auth_core.is_authenticated(),
        "remaining_attempts": auth_core.remaining_attempts,
    }


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(principal: Principal = Depends(require_session)) -> MeResponse:
    """Return the identity behind the current session."""
    return MeResponse.from_principal(principal)


@router.get("/auth/session", response_model=SessionStatsResponse)
def session_stats(request: Request, principal: Principal = Depends(require_session)) -> JSONResponse:
    """Return issuance time, idle time, and persistence of the current session."""
    auth_core: AuthCore = request.app.state.auth_core
    stats = auth_core.sessions.stats()
    if stats is None:
        return JSONResponse(
            status_code=401,
            content={"error": {"code": "unauthorized", "message": "Authentication required."}},
        )
    return JSONResponse(content=SessionStatsResponse.from_stats(stats).model_dump(mode="json"))


@router.post("/auth/activity", response_model=ActivityResponse)
def activity(request: Request, principal: Principal = Depends(require_session)) -> ActivityResponse:
    """Record user activity, pushing back inactivity logout and session expiry."""
    auth_core: AuthCore = request.app.state.auth_core
    return ActivityResponse(ok=auth_core.record_activity())
