"""
auth/guard.py -- Allow/deny decision for a routing layer.

AuthGuard answers one question: may the current session reach a resource that
needs required_role? It reads the session without repairing or deleting
anything -- redirects, cookie cleanup, and expired-session teardown are the
caller's job.
"""

from __future__ import annotations

from enum import Enum

from auth.models import Role
from auth.session import SessionManager


class Decision(str, Enum):
    allow = "allow"
    deny_not_authenticated = "not_authenticated"
    deny_insufficient_role = "insufficient_role"

    @property
    def allowed(self) -> bool:
        return self is Decision.allow


class AuthGuard:
    def __init__(self, sessions: SessionManager) -> None:
        self._sessions = sessions

    def authorize(self, required_role: Role | None = None) -> Decision:
        record = self._sessions.current(repair=False)
        if record is None or not self._sessions.is_valid(record):
            return Decision.deny_not_authenticated
        if required_role is not None and not record.role.satisfies(required_role):
            return Decision.deny_insufficient_role
        return Decision.allow
