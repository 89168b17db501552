"""
api/routes/v1/admin.py -- Admin-only endpoints.

Routes:
  GET /api/v1/admin/policy -- effective session and lockout policy (admin only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from auth.core import AuthCore
from auth.dependencies import require_admin
from auth.models import Principal

router = APIRouter()


@router.get("/admin/policy")
def policy(request: Request, principal: Principal = Depends(require_admin)) -> dict:
    """Return the policy values the running AuthCore enforces."""
    auth_core: AuthCore = request.app.state.auth_core
    return {
        "max_attempts": auth_core.max_attempts,
        "lockout_cooldown_seconds": auth_core.lockout_cooldown_seconds,
        "inactivity_timeout_seconds": auth_core.inactivity_timeout_seconds,
        "inactivity_check_interval_seconds": auth_core.monitor.interval_seconds,
        "session_timeout_seconds": auth_core.sessions.session_timeout_seconds,
        "codec": type(request.app.state.codec).__name__,
    }
