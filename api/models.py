"""
API request and response models for the SessionKeeper HTTP adapter.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import LoginResult, Principal

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    standard = "standard"
    admin = "admin"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    identifier is deliberately not pattern-validated here: the core owns the
    structural check and reports it as invalid_identifier_format without
    charging a login attempt.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=255)
    secret: str = Field(min_length=1, max_length=255)
    remember: bool = False


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login (success and failure)."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    role: Optional[RoleEnum] = None
    reason: Optional[str] = None
    persisted: bool = False
    remaining_attempts: Optional[int] = None

    @classmethod
    def from_result(cls, result: LoginResult, remaining_attempts: Optional[int] = None) -> "LoginResponse":
        return cls(
            ok=result.ok,
            role=RoleEnum(result.role.value) if result.role is not None else None,
            reason=result.reason.value if result.reason is not None else None,
            persisted=result.persisted,
            remaining_attempts=remaining_attempts,
        )


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: RoleEnum

    @classmethod
    def from_principal(cls, principal: Principal) -> "MeResponse":
        return cls(id=principal.id, role=RoleEnum(principal.role.value))


class SessionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    issued_at: str
    last_activity_at: str
    duration: str
    idle: str
    is_valid: bool
    persistent: bool


class SessionStatsResponse(BaseModel):
    """Response for GET /api/v1/auth/session."""

    model_config = ConfigDict(frozen=True)

    principal: MeResponse
    session: SessionInfo

    @classmethod
    def from_stats(cls, stats: dict) -> "SessionStatsResponse":
        s = stats["session"]
        return cls(
            principal=MeResponse(id=stats["principal"]["id"], role=RoleEnum(stats["principal"]["role"])),
            session=SessionInfo(
                session_id=s["sessionId"],
                issued_at=s["issuedAt"],
                last_activity_at=s["lastActivityAt"],
                duration=s["duration"],
                idle=s["idle"],
                is_valid=s["isValid"],
                persistent=s["persistent"],
            ),
        )


class ActivityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
