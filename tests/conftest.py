"""
tests/conftest.py -- Shared test fixtures for the SessionKeeper test suite.

This module provides:
  - FakeClock: a callable clock the tests move by hand
  - credentials: in-memory CredentialStore with a standard and an admin user
  - kv_store / codec / sessions / make_core / auth_core: a fresh session core per test,
    durable tier on tmp_path so "restart" is just building a new store on the
    same file
  - api_client: TestClient whose lifespan is replaced with test stores

Env vars must be set before any core/auth/api import: DEBUG lets get_settings()
auto-generate SECRET_KEY, and LOGIN_RATE_LIMIT keeps slowapi out of the way of
tests that deliberately fail logins.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import bcrypt
import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.codec import SignedCodec
from auth.core import AuthCore
from auth.events import RecordingEventSink
from auth.guard import AuthGuard
from auth.models import Credential, Role
from auth.session import SessionManager
from auth.store import InMemoryCredentialStore
from storage.store import TieredKeyValueStore

TEST_SECRET_KEY = "test-secret-key-0123456789abcdef0123456789abcdef"

STANDARD_ID = "a@b.com"
STANDARD_SECRET = "right"
ADMIN_ID = "admin@example.com"
ADMIN_SECRET = "admin-secret"


def _fast_hash(plain: str) -> str:
    # Minimum bcrypt cost keeps the suite quick; verify_password() accepts any cost.
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


_STANDARD_HASH = _fast_hash(STANDARD_SECRET)
_ADMIN_HASH = _fast_hash(ADMIN_SECRET)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credentials() -> InMemoryCredentialStore:
    return InMemoryCredentialStore(
        [
            Credential(STANDARD_ID, _STANDARD_HASH, Role.standard),
            Credential(ADMIN_ID, _ADMIN_HASH, Role.admin),
        ]
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "sessions.db"


@pytest.fixture
def kv_store(db_path: Path) -> Generator[TieredKeyValueStore, None, None]:
    store = TieredKeyValueStore(db_path)
    yield store
    store.close()


@pytest.fixture
def codec(clock: FakeClock) -> SignedCodec:
    return SignedCodec(TEST_SECRET_KEY, clock=clock)


@pytest.fixture
def sessions(kv_store: TieredKeyValueStore, codec: SignedCodec, clock: FakeClock) -> SessionManager:
    return SessionManager(kv_store, codec, clock=clock)


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def make_core(credentials, sessions, events, clock):
    """Factory for AuthCore instances whose monitor never fires on its own.

    Keyword overrides go straight to AuthCore (max_attempts,
    lockout_cooldown_seconds, ...). Every core built is closed on teardown.
    """
    built: list[AuthCore] = []

    def factory(**overrides) -> AuthCore:
        options = {
            "credentials": credentials,
            "sessions": sessions,
            "events": events,
            "inactivity_check_interval_seconds": 3600.0,
            "clock": clock,
        }
        options.update(overrides)
        core = AuthCore(
            options.pop("credentials"),
            options.pop("sessions"),
            options.pop("events"),
            **options,
        )
        built.append(core)
        return core

    yield factory
    for core in built:
        core.close()


@pytest.fixture
def auth_core(make_core) -> AuthCore:
    return make_core()


@pytest.fixture
def guard(sessions: SessionManager) -> AuthGuard:
    return AuthGuard(sessions)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_core: AuthCore, kv_store: TieredKeyValueStore, codec: SignedCodec):
    """Return an async context manager that replaces the real lifespan.

    Wires the per-test session core into app.state so routes never touch the
    on-disk production stores.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.kv_store = kv_store
        app.state.codec = codec
        app.state.auth_core = auth_core
        app.state.guard = AuthGuard(auth_core.sessions)
        yield
        auth_core.close()

    return test_lifespan


@pytest.fixture
def api_client(auth_core, kv_store, codec) -> Generator[TestClient, None, None]:
    """Yield a TestClient bound to a fresh session core.

    Function-scoped: the core holds the one session and the attempt counter,
    so sharing it between tests would leak lockouts and logins.
    base_url must be localhost to get past TrustedHostMiddleware.
    """
    app.router.lifespan_context = _patch_lifespan(auth_core, kv_store, codec)
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client
