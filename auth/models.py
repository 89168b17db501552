"""
auth/models.py -- Domain dataclasses for authentication and session entities.

Pattern: Data class (pure data container, minimal logic). Stores, the session
manager, and the auth core do the work; these types only own domain shape.

Layer rule: no imports from api/, storage/, or core/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from auth.errors import LoginFailure, SessionCorrupt

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Structural check only: something@domain.tld with no whitespace. Whether the
# mailbox exists is the credential store's business, not ours.
IDENTIFIER_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

_IDENTIFIER_RE = re.compile(IDENTIFIER_PATTERN)


def is_valid_identifier(identifier: str) -> bool:
    return isinstance(identifier, str) and _IDENTIFIER_RE.match(identifier) is not None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(str, Enum):
    standard = "standard"
    admin = "admin"

    def satisfies(self, required: Role) -> bool:
        """admin satisfies every requirement; standard satisfies only standard."""
        return self is Role.admin or self is required


class AuthState(str, Enum):
    anonymous = "anonymous"
    authenticated = "authenticated"
    locked = "locked"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credential:
    """A principal's stored credential as handed out by a CredentialStore.

    secret is a bcrypt hash, never the plaintext. The core never mutates a
    Credential -- it only compares against it.
    """

    identifier: str
    secret: str
    role: Role = Role.standard


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role


@dataclass
class SessionRecord:
    """The current session for one execution context.

    issued_at and last_activity_at are POSIX timestamps (seconds). Only
    SessionManager.touch() moves last_activity_at; nothing moves issued_at.
    """

    principal_id: str
    role: Role
    issued_at: float
    last_activity_at: float
    session_id: str
    persistent: bool = False

    @property
    def principal(self) -> Principal:
        return Principal(id=self.principal_id, role=self.role)

    def to_payload(self) -> dict:
        return {
            "principalId": self.principal_id,
            "role": self.role.value,
            "issuedAt": self.issued_at,
            "lastActivityAt": self.last_activity_at,
            "sessionId": self.session_id,
            "persistent": self.persistent,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> SessionRecord:
        """Rebuild a record from a decoded payload.

        Raises SessionCorrupt when a required field is missing or has the wrong
        type -- a token that decodes cleanly but carries garbage is still corrupt.
        """
        try:
            principal_id = payload["principalId"]
            session_id = payload["sessionId"]
            if not isinstance(principal_id, str) or not principal_id:
                raise SessionCorrupt("principalId must be a non-empty string")
            if not isinstance(session_id, str) or not session_id:
                raise SessionCorrupt("sessionId must be a non-empty string")
            return cls(
                principal_id=principal_id,
                role=Role(payload["role"]),
                issued_at=float(payload["issuedAt"]),
                last_activity_at=float(payload["lastActivityAt"]),
                session_id=session_id,
                persistent=bool(payload.get("persistent", False)),
            )
        except SessionCorrupt:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise SessionCorrupt(f"malformed session payload: {exc}") from exc


@dataclass
class AttemptCounter:
    """Failed-login counter. Lives only as long as the AuthCore that owns it."""

    count: int = 0
    window_start: float | None = None

    def reset(self) -> None:
        self.count = 0
        self.window_start = None


# ---------------------------------------------------------------------------
# Results returned across the core boundary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginResult:
    """Outcome of AuthCore.login().

    persisted is False when the session could only be kept in memory for this
    process (storage unavailable) -- the login still succeeded.
    """

    ok: bool
    role: Role | None = None
    reason: LoginFailure | None = None
    persisted: bool = False


@dataclass(frozen=True)
class LogoutResult:
    ok: bool = True
