"""
auth/core.py -- Login state machine, lockout policy, and inactivity logout.

States (AuthState):

    anonymous --login ok-------------> authenticated
    anonymous --login bad------------> anonymous   (attempt counter + 1)
    anonymous --login bad (limit)----> locked
    locked    --login any------------> locked      (credential store not consulted)
    authenticated --logout-----------> anonymous
    authenticated --idle too long----> anonymous   (InactivityMonitor)

AuthCore is an ordinary object. The host builds one per execution context
(AuthCore.from_settings is the usual composition root) and passes it around;
tests build a fresh one per case.

Security notes:
  [C1] Unknown identifier and wrong secret are indistinguishable to the caller:
       same reason code, same bcrypt work (see auth.tokens.authenticate).
  [L1] A structurally invalid identifier is rejected before the lockout check
       and does not count as a failed attempt -- typos are not attacks.
  [L2] Once locked, login() returns account_locked without touching the
       credential store, even for the right secret. With
       LOCKOUT_COOLDOWN_SECONDS=0 the lock lasts until the process restarts;
       otherwise the counter resets once the cool-down has elapsed since the
       first failure of the window.

Nothing here raises past the public methods: failures come back as
LoginResult.reason, and storage problems only clear LoginResult.persisted.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable

from auth.errors import LoginFailure
from auth.events import AUTH_STATE_CHANGED, EventSink, LoggingEventSink, emit_safely
from auth.models import (
    AttemptCounter,
    AuthState,
    LoginResult,
    LogoutResult,
    Principal,
    SessionRecord,
    is_valid_identifier,
)
from auth.monitor import InactivityMonitor
from auth.session import SessionManager
from auth.tokens import authenticate

if TYPE_CHECKING:
    from auth.store import CredentialLookup
    from core.config import Settings

logger = logging.getLogger("sessionkeeper.auth")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INACTIVITY_TIMEOUT_SECONDS = 30 * 60
DEFAULT_CHECK_INTERVAL_SECONDS = 60.0


class AuthCore:
    def __init__(
        self,
        credentials: CredentialLookup,
        sessions: SessionManager,
        events: EventSink | None = None,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout_cooldown_seconds: int = 0,
        inactivity_timeout_seconds: int = DEFAULT_INACTIVITY_TIMEOUT_SECONDS,
        inactivity_check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self.sessions = sessions
        self._events = events if events is not None else LoggingEventSink()
        self.max_attempts = max_attempts
        self.lockout_cooldown_seconds = lockout_cooldown_seconds
        self.inactivity_timeout_seconds = inactivity_timeout_seconds
        self._clock = clock
        self._counter = AttemptCounter()
        self._lock = threading.RLock()
        self.monitor = InactivityMonitor(self.check_inactivity, inactivity_check_interval_seconds)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        credentials: CredentialLookup,
        sessions: SessionManager,
        events: EventSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> AuthCore:
        return cls(
            credentials,
            sessions,
            events,
            max_attempts=settings.max_login_attempts,
            lockout_cooldown_seconds=settings.lockout_cooldown_seconds,
            inactivity_timeout_seconds=settings.inactivity_timeout_seconds,
            inactivity_check_interval_seconds=settings.inactivity_check_interval_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Resume monitoring for a session restored from storage, if any."""
        if self.is_authenticated():
            self.monitor.start()

    def close(self) -> None:
        """Cancel background work. The session itself is left in storage."""
        self.monitor.stop()

    def __enter__(self) -> AuthCore:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lockout
    # ------------------------------------------------------------------

    @property
    def attempts(self) -> int:
        with self._lock:
            self._decay_lockout()
            return self._counter.count

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_attempts - self.attempts)

    def is_locked(self) -> bool:
        with self._lock:
            self._decay_lockout()
            return self._counter.count >= self.max_attempts

    def _decay_lockout(self) -> None:
        if self.lockout_cooldown_seconds <= 0 or self._counter.window_start is None:
            return
        if self._clock() - self._counter.window_start >= self.lockout_cooldown_seconds:
            if self._counter.count >= self.max_attempts:
                logger.info("Lockout cool-down elapsed; login attempts re-enabled")
            self._counter.reset()

    def _record_failure(self) -> None:
        if self._counter.count == 0:
            self._counter.window_start = self._clock()
        self._counter.count = min(self._counter.count + 1, self.max_attempts)
        if self._counter.count >= self.max_attempts:
            logger.warning("Login locked after %d failed attempts", self._counter.count)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        if self.is_authenticated():
            return AuthState.authenticated
        if self.is_locked():
            return AuthState.locked
        return AuthState.anonymous

    def is_authenticated(self) -> bool:
        return self._valid_record() is not None

    def current_principal(self) -> Principal | None:
        record = self._valid_record()
        return record.principal if record is not None else None

    def _valid_record(self) -> SessionRecord | None:
        """Return the current session if still valid; tear down an expired one."""
        with self._lock:
            record = self.sessions.current()
            if record is None or self.sessions.is_valid(record):
                return record
            logger.debug("Session for %s expired", record.principal_id)
            ended = self._end_session(record, reason="expired")
        if ended:
            self._emit(False, None, reason="expired")
        return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def login(self, identifier: str, secret: str, persist: bool = False) -> LoginResult:
        if not is_valid_identifier(identifier):
            logger.info("Login rejected: identifier is not structurally valid")
            return LoginResult(ok=False, reason=LoginFailure.invalid_identifier_format)

        with self._lock:
            if self.is_locked():
                logger.warning("Login for %s rejected: account locked", identifier)
                return LoginResult(ok=False, reason=LoginFailure.account_locked)

            try:
                credential = authenticate(self._credentials, identifier, secret)
            except Exception:
                # A broken credential backend is not the user's fault: report
                # a generic failure and leave the attempt counter alone.
                logger.exception("Credential lookup failed for %s", identifier)
                return LoginResult(ok=False, reason=LoginFailure.invalid_credentials)

            if credential is None:
                self._record_failure()
                logger.info(
                    "Login failed for %s (%d/%d attempts)", identifier, self._counter.count, self.max_attempts
                )
                return LoginResult(ok=False, reason=LoginFailure.invalid_credentials)

            self._counter.reset()
            record = self.sessions.create(credential, persist)
            persisted = self.sessions.last_write_ok
            self.monitor.start()

        logger.info("Login succeeded for %s (role=%s)", record.principal_id, record.role.value)
        self._emit(True, record)
        return LoginResult(ok=True, role=credential.role, persisted=persisted)

    def logout(self) -> LogoutResult:
        """End the current session. Always ok, including when nobody is logged in."""
        with self._lock:
            record = self.sessions.current(repair=False)
            ended = self._end_session(record, reason="logout")
        if ended:
            self._emit(False, None, reason="logout")
        return LogoutResult(ok=True)

    def record_activity(self) -> bool:
        """Refresh last activity on the current session. Returns False if there is none."""
        record = self._valid_record()
        if record is None:
            return False
        return self.sessions.touch(record) is not None

    def check_inactivity(self) -> bool:
        """Log out if the session has been idle too long. Returns True if it did.

        Called by the InactivityMonitor every interval; safe to call directly.
        """
        with self._lock:
            record = self.sessions.current()
            if record is None:
                return False
            idle = self._clock() - record.last_activity_at
            if idle < self.inactivity_timeout_seconds and self.sessions.is_valid(record):
                return False
            reason = "inactivity" if idle >= self.inactivity_timeout_seconds else "expired"
            # A login may have replaced record since the monitor woke up.
            if not self._end_session(record, reason=reason):
                return False
            logger.info("Session for %s ended after %.0fs idle (%s)", record.principal_id, idle, reason)
        self._emit(False, None, reason=reason)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _end_session(self, record: SessionRecord | None, reason: str) -> bool:
        """Destroy record if it is still the current session. Call with self._lock held.

        Returns True when a session was actually closed; the caller then emits
        the state change after releasing the lock. With record=None storage is
        cleared unconditionally and nothing is reported.
        """
        if not self.sessions.destroy(record.session_id if record is not None else None):
            return False
        # Never join here: the monitor thread may be waiting on self._lock.
        self.monitor.stop(timeout=0)
        if record is None:
            return False
        logger.info("Session for %s closed (%s)", record.principal_id, reason)
        return True

    def _emit(self, authenticated: bool, record: SessionRecord | None, reason: str | None = None) -> None:
        payload = {
            "isAuthenticated": authenticated,
            "principalId": record.principal_id if record is not None else None,
            "role": record.role.value if record is not None else None,
            "timestamp": self._clock(),
        }
        if reason is not None:
            payload["reason"] = reason
        emit_safely(self._events, AUTH_STATE_CHANGED, payload)
