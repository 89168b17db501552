"""
auth/store.py -- Credential lookup for the session core.

The core only ever calls find(identifier). Seeding and administering
credentials is somebody else's job (the CLI's add-user command, a test
fixture, an admin tool); the add/list/remove methods exist for them.

Two implementations:
  InMemoryCredentialStore -- dict-backed, for tests and embedded hosts.
  CredentialStore         -- SQLAlchemy Core, Repository + Data Mapper.
                             _row_to_credential is the mapper; nothing outside
                             this module touches SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Identifiers are stored and matched exactly as given (case-sensitive).

DB path: auth/sessionkeeper_auth.db unless CREDENTIALS_DB_URL says otherwise.

Layer rule: no imports from api/ or storage/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Credential, Role

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'sessionkeeper_auth.db'}"


class CredentialLookup(Protocol):
    def find(self, identifier: str) -> Credential | None: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryCredentialStore:
    def __init__(self, credentials: list[Credential] | None = None) -> None:
        self._by_identifier: dict[str, Credential] = {}
        for credential in credentials or []:
            self.add(credential)

    def add(self, credential: Credential) -> None:
        if credential.identifier in self._by_identifier:
            raise ValueError(f"identifier already registered: {credential.identifier!r}")
        self._by_identifier[credential.identifier] = credential

    def find(self, identifier: str) -> Credential | None:
        return self._by_identifier.get(identifier)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_credentials = Table(
    "credentials",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(255), nullable=False, unique=True),
    Column("secret_hash", Text, nullable=False),  # bcrypt
    Column("role", String(30), nullable=False, server_default="standard"),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode per connection (PRAGMAs are not inherited from the pool)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """SQL-backed credential repository.

    Usage:
        store = CredentialStore()
        store.add(Credential("a@b.com", hash_password("secret"), Role.admin))
        credential = store.find("a@b.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def add(self, credential: Credential) -> int:
        """Insert a credential and return its row id.

        Raises sqlalchemy.exc.IntegrityError if the identifier already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _credentials.insert().values(
                    identifier=credential.identifier,
                    secret_hash=credential.secret,
                    role=credential.role.value,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find(self, identifier: str) -> Credential | None:
        """Look up a credential by exact identifier. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_credentials.select().where(_credentials.c.identifier == identifier)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def list_credentials(self) -> list[Credential]:
        """Return every credential ordered by identifier."""
        with self.engine.connect() as conn:
            rows = conn.execute(_credentials.select().order_by(_credentials.c.identifier)).fetchall()
        return [_row_to_credential(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_credentials)).scalar()
        return result or 0

    def remove(self, identifier: str) -> bool:
        """Delete a credential. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_credentials.delete().where(_credentials.c.identifier == identifier))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        identifier=row.identifier,
        secret=row.secret_hash,
        role=Role(row.role),
    )
