"""
auth/session.py -- Session issuance, lookup, refresh, and teardown.

SessionManager is the only writer of the two session keys:

  session:current   ephemeral tier, always written
  session:remember  durable tier, written only for "remember me" logins

The key-value store is the source of truth. The in-memory cache only saves a
decode when the stored token has not changed since we last read it, and it is
replaced on every write. A fresh SessionManager (i.e. a restarted process)
starts with an empty cache and rehydrates from storage.

Failure policy:
  SessionCorrupt / SessionExpired from the codec -> logged at debug, the entry
      is discarded, and the caller sees "no session". Never surfaced.
  StorageUnavailable -> logged at warning; the session is kept in memory for
      the life of this SessionManager and last_write_ok is False so the caller
      can say persistence was not guaranteed.

Concurrency: every operation runs under one re-entrant lock, so destroy() is
terminal -- a touch() that lands after it finds no current session and does
nothing.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from auth.codec import Codec
from auth.errors import CodecError
from auth.models import Credential, SessionRecord
from auth.tokens import generate_session_id
from storage.store import KeyValueStore, StorageUnavailable, Tier

logger = logging.getLogger("sessionkeeper.session")

EPHEMERAL_KEY = "session:current"
DURABLE_KEY = "session:remember"

DEFAULT_SESSION_TIMEOUT_SECONDS = 24 * 60 * 60


def _short(session_id: str) -> str:
    return f"{session_id[:10]}..."


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def format_duration(seconds: float) -> str:
    """Render an elapsed time as "2h 5m", "4m 10s", or "9s"."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class SessionManager:
    def __init__(
        self,
        store: KeyValueStore,
        codec: Codec,
        session_timeout_seconds: int = DEFAULT_SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._codec = codec
        self.session_timeout_seconds = session_timeout_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._cache: Optional[SessionRecord] = None
        self._cache_token: Optional[str] = None
        # True after a failed write: storage no longer reflects the session,
        # so the cache is the only copy we have.
        self._memory_only = False
        self.last_write_ok = True

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(self, principal: Credential, persistent: bool) -> SessionRecord:
        """Issue a new session for principal, replacing any current one."""
        now = self._clock()
        record = SessionRecord(
            principal_id=principal.identifier,
            role=principal.role,
            issued_at=now,
            last_activity_at=now,
            session_id=generate_session_id(self._clock),
            persistent=persistent,
        )
        with self._lock:
            self._persist(record)
        logger.info(
            "Session %s issued for %s (persistent=%s, stored=%s)",
            _short(record.session_id),
            record.principal_id,
            persistent,
            self.last_write_ok,
        )
        return replace(record)

    def current(self, repair: bool = True) -> Optional[SessionRecord]:
        """Return the current session, or None.

        Reads the ephemeral tier first and falls back to the durable tier. With
        repair=True a durable hit is copied back into the ephemeral tier and an
        undecodable entry is deleted from its own tier only; repair=False
        performs no writes at all.
        """
        with self._lock:
            if self._memory_only:
                return replace(self._cache) if self._cache is not None else None

            for key, tier in ((EPHEMERAL_KEY, Tier.ephemeral), (DURABLE_KEY, Tier.durable)):
                try:
                    token = self._store.get(key, tier)
                except StorageUnavailable as exc:
                    logger.warning("Session storage unreadable, using cached session: %s", exc)
                    return replace(self._cache) if self._cache is not None else None
                if token is None:
                    continue
                record = self._decode(token)
                if record is None:
                    # A bad ephemeral entry must not hide a good durable one.
                    if repair:
                        self._remove(key)
                    continue
                if tier is Tier.durable and repair:
                    try:
                        self._store.put(EPHEMERAL_KEY, token, Tier.ephemeral)
                        logger.debug("Session %s restored from durable tier", _short(record.session_id))
                    except StorageUnavailable as exc:
                        logger.warning("Could not restore session into ephemeral tier: %s", exc)
                return replace(record)

            self._cache = self._cache_token = None
            return None

    def is_valid(self, record: Optional[SessionRecord]) -> bool:
        """True iff record exists and has seen activity within the session timeout.

        The window slides: every touch() pushes expiry out again.
        """
        if record is None:
            return False
        return self._clock() - record.last_activity_at < self.session_timeout_seconds

    def touch(self, record: SessionRecord) -> Optional[SessionRecord]:
        """Stamp activity on record and re-persist it.

        Returns the refreshed record, or None when record is no longer the
        current session (destroyed or replaced) -- in that case nothing is
        written, so a late touch can never bring a destroyed session back.
        """
        with self._lock:
            current = self.current()
            if current is None or current.session_id != record.session_id:
                logger.debug("touch() ignored for stale session %s", _short(record.session_id))
                return None
            refreshed = replace(current, last_activity_at=self._clock())
            self._persist(refreshed)
        record.last_activity_at = refreshed.last_activity_at
        return replace(refreshed)

    def destroy(self, session_id: Optional[str] = None) -> bool:
        """Remove the session from both tiers and forget the cache. Idempotent.

        With session_id given, only that session is removed: if another one has
        replaced it in the meantime nothing is touched and False is returned.
        """
        with self._lock:
            if session_id is not None:
                current = self.current(repair=False)
                if current is not None and current.session_id != session_id:
                    logger.debug("destroy() skipped, %s is no longer current", _short(session_id))
                    return False
            self._cache = self._cache_token = None
            self._memory_only = False
            self._remove_all()
        return True

    def stats(self) -> Optional[dict]:
        """Human-oriented summary of the current session, or None."""
        record = self.current()
        if record is None:
            return None
        now = self._clock()
        return {
            "principal": {"id": record.principal_id, "role": record.role.value},
            "session": {
                "sessionId": _short(record.session_id),
                "issuedAt": _iso(record.issued_at),
                "lastActivityAt": _iso(record.last_activity_at),
                "duration": format_duration(now - record.issued_at),
                "idle": format_duration(now - record.last_activity_at),
                "isValid": self.is_valid(record),
                "persistent": record.persistent,
            },
        }

    # ------------------------------------------------------------------
    # Internals (call with self._lock held)
    # ------------------------------------------------------------------

    def _persist(self, record: SessionRecord) -> None:
        token = self._codec.encode(record.to_payload())
        ok = True
        try:
            self._store.put(EPHEMERAL_KEY, token, Tier.ephemeral)
        except StorageUnavailable as exc:
            logger.warning("Ephemeral session write failed: %s", exc)
            ok = False
        try:
            if record.persistent:
                self._store.put(DURABLE_KEY, token, Tier.durable)
            else:
                # A previous "remember me" login must not outlive this one.
                self._store.remove(DURABLE_KEY)
        except StorageUnavailable as exc:
            logger.warning("Durable session write failed: %s", exc)
            ok = False

        self._cache, self._cache_token = record, token
        self._memory_only = not ok
        self.last_write_ok = ok

    def _decode(self, token: str) -> Optional[SessionRecord]:
        if token == self._cache_token and self._cache is not None:
            return self._cache
        try:
            record = SessionRecord.from_payload(self._codec.decode(token))
        except CodecError as exc:
            logger.debug("Stored session discarded (%s): %s", type(exc).__name__, exc)
            return None
        self._cache, self._cache_token = record, token
        return record

    def _remove(self, key: str) -> None:
        try:
            self._store.remove(key)
        except StorageUnavailable as exc:
            logger.warning("Could not remove %s: %s", key, exc)

    def _remove_all(self) -> None:
        for key in (EPHEMERAL_KEY, DURABLE_KEY):
            self._remove(key)
