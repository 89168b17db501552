"""
auth/events.py -- Fire-and-forget notification hook for auth state changes.

AuthCore calls emit("authStateChanged", {...}) after every login, logout, and
automatic logout. What happens next (repaint a navbar, redirect, write an
audit line) belongs to whoever implements the sink.

A sink that raises must not break login or logout, so emit_safely() logs and
drops the exception.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger("sessionkeeper.events")

AUTH_STATE_CHANGED = "authStateChanged"


class EventSink:
    """Base sink: discards every event. Subclass and override emit()."""

    def emit(self, event_name: str, payload: dict) -> None:
        pass


class LoggingEventSink(EventSink):
    """Writes each event to the sessionkeeper.events logger at INFO."""

    def emit(self, event_name: str, payload: dict) -> None:
        logger.info(
            "%s authenticated=%s principal=%s role=%s",
            event_name,
            payload.get("isAuthenticated"),
            payload.get("principalId"),
            payload.get("role"),
        )


class RecordingEventSink(EventSink):
    """Keeps every (event_name, payload) pair in memory, in emission order.

    Used by tests and by hosts that poll for state changes instead of
    subscribing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[tuple[str, dict]] = []

    def emit(self, event_name: str, payload: dict) -> None:
        with self._lock:
            self.events.append((event_name, dict(payload)))

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


def emit_safely(sink: EventSink, event_name: str, payload: dict) -> None:
    try:
        sink.emit(event_name, payload)
    except Exception:
        logger.exception("Event sink %s failed on %s", type(sink).__name__, event_name)
