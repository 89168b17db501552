"""
auth/dependencies.py -- FastAPI Depends() helpers backed by AuthGuard.

The HTTP adapter holds exactly one AuthCore / AuthGuard pair on app.state
(built in the api.main lifespan). These helpers turn AuthGuard decisions into
HTTP errors:

  require_session() -> 401 unless a valid session exists
  require_admin()   -> 401 without a session, 403 for a non-admin session

Both return the current Principal so route handlers never reach into storage.

Layer rule: auth/dependencies.py may import from fastapi (for HTTPException
and Request) because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.core import AuthCore
from auth.guard import AuthGuard, Decision
from auth.models import Principal, Role


def _enforce(request: Request, required_role: Role | None) -> Principal:
    guard: AuthGuard = request.app.state.guard
    auth_core: AuthCore = request.app.state.auth_core

    decision = guard.authorize(required_role)
    if decision is Decision.deny_not_authenticated:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    if decision is Decision.deny_insufficient_role:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    principal = auth_core.current_principal()
    if principal is None:
        # Session vanished between the guard check and now (logout or expiry).
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal


def require_session(request: Request) -> Principal:
    """Require a valid session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(require_session)): ...
    """
    return _enforce(request, None)


def require_admin(request: Request) -> Principal:
    """Require a valid session whose role satisfies admin."""
    return _enforce(request, Role.admin)
