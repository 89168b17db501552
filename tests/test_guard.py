"""Unit tests for auth/guard.py -- AuthGuard decisions.

AuthGuard must be a pure read: no decision may write to or delete from the
key-value store.
"""

from auth.guard import AuthGuard, Decision
from auth.models import Credential, Role
from auth.session import DURABLE_KEY, EPHEMERAL_KEY, SessionManager
from storage.store import Tier, TieredKeyValueStore

_STANDARD = Credential("a@b.com", "unused-hash", Role.standard)
_ADMIN = Credential("admin@example.com", "unused-hash", Role.admin)


class TestAuthorize:
    def test_no_session_denied(self, guard):
        assert guard.authorize() is Decision.deny_not_authenticated
        assert guard.authorize(Role.admin) is Decision.deny_not_authenticated

    def test_standard_session_allowed_without_role(self, guard, sessions):
        sessions.create(_STANDARD, persistent=False)
        assert guard.authorize() is Decision.allow
        assert guard.authorize(Role.standard) is Decision.allow

    def test_standard_session_denied_admin(self, guard, sessions):
        sessions.create(_STANDARD, persistent=False)
        assert guard.authorize(Role.admin) is Decision.deny_insufficient_role

    def test_admin_satisfies_everything(self, guard, sessions):
        sessions.create(_ADMIN, persistent=False)
        assert guard.authorize(Role.admin) is Decision.allow
        assert guard.authorize(Role.standard) is Decision.allow

    def test_expired_session_denied(self, guard, sessions, clock):
        sessions.create(_ADMIN, persistent=False)
        clock.advance(sessions.session_timeout_seconds)
        assert guard.authorize() is Decision.deny_not_authenticated

    def test_allowed_property(self):
        assert Decision.allow.allowed
        assert not Decision.deny_not_authenticated.allowed
        assert not Decision.deny_insufficient_role.allowed


class TestPurity:
    def test_expired_session_left_in_storage(self, guard, sessions, kv_store, clock):
        sessions.create(_STANDARD, persistent=True)
        clock.advance(sessions.session_timeout_seconds)
        guard.authorize()
        assert kv_store.get(EPHEMERAL_KEY) is not None
        assert kv_store.get(DURABLE_KEY) is not None

    def test_corrupt_token_left_in_storage(self, guard, kv_store):
        kv_store.put(EPHEMERAL_KEY, "garbage", Tier.ephemeral)
        assert guard.authorize() is Decision.deny_not_authenticated
        assert kv_store.get(EPHEMERAL_KEY) == "garbage"

    def test_durable_session_not_copied_to_ephemeral(self, db_path, codec, clock):
        first = TieredKeyValueStore(db_path)
        SessionManager(first, codec, clock=clock).create(_STANDARD, persistent=True)
        first.close()

        second = TieredKeyValueStore(db_path)
        try:
            guard = AuthGuard(SessionManager(second, codec, clock=clock))
            assert guard.authorize() is Decision.allow
            assert second.get(EPHEMERAL_KEY, Tier.ephemeral) is None
        finally:
            second.close()
