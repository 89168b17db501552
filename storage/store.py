"""
storage/store.py -- Two-tier key-value store for session persistence.

Tiers:
  ephemeral -- a dict owned by the store object. Gone when the process ends,
               which is exactly the lifetime of a browser tab's sessionStorage.
  durable   -- a SQLite table. Survives restarts, like localStorage.

The store knows nothing about sessions: keys and values are plain strings.
SessionManager is the only writer of the session:* keys.

Usage:
    kv = TieredKeyValueStore(Path("sessionkeeper.db"))
    kv.put("session:current", token, Tier.ephemeral)
    kv.put("session:remember", token, Tier.durable)
    kv.get("session:current")               # ephemeral first, then durable
    kv.get("session:remember", Tier.durable)
    kv.remove("session:current")            # both tiers
    kv.close()

Every backend error is re-raised as StorageUnavailable so callers can degrade
instead of crashing.

Layer rule: storage/ is a leaf. It may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger("sessionkeeper.storage")

_DEFAULT_DB = Path(__file__).parent / "sessionkeeper.db"

_DDL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  REAL NOT NULL
);
"""


class StorageUnavailable(Exception):
    """The backing store could not complete a read or write."""


class Tier(str, Enum):
    ephemeral = "ephemeral"
    durable = "durable"


class KeyValueStore(ABC):
    """Contract consumed by SessionManager."""

    @abstractmethod
    def get(self, key: str, tier: Optional[Tier] = None) -> Optional[str]:
        """Return the value for key. With tier=None, ephemeral wins over durable."""

    @abstractmethod
    def put(self, key: str, value: str, tier: Tier) -> None:
        """Store value under key in one tier, replacing any existing entry."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key from every tier. Removing an absent key is not an error."""


class TieredKeyValueStore(KeyValueStore):
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB) -> None:
        self._ephemeral: dict[str, str] = {}
        # One connection shared with the inactivity monitor thread; the lock
        # serialises access since sqlite3 connections are not thread-safe.
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_DDL)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"cannot open durable store at {db_path}: {exc}") from exc

    def get(self, key: str, tier: Optional[Tier] = None) -> Optional[str]:
        if tier in (None, Tier.ephemeral):
            value = self._ephemeral.get(key)
            if value is not None or tier is Tier.ephemeral:
                return value
        with self._lock:
            try:
                row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"durable read failed for {key!r}: {exc}") from exc
        return row[0] if row is not None else None

    def put(self, key: str, value: str, tier: Tier) -> None:
        if tier is Tier.ephemeral:
            self._ephemeral[key] = value
            return
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, time.time()),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"durable write failed for {key!r}: {exc}") from exc

    def remove(self, key: str) -> None:
        self._ephemeral.pop(key, None)
        with self._lock:
            try:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"durable delete failed for {key!r}: {exc}") from exc

    def ping(self) -> bool:
        """Return True if the durable tier answers a trivial query. Used by /health."""
        with self._lock:
            try:
                self._conn.execute("SELECT 1").fetchone()
            except sqlite3.Error:
                logger.warning("Durable store health check failed", exc_info=True)
                return False
        return True

    def close(self) -> None:
        self._ephemeral.clear()
        with self._lock:
            self._conn.close()
