"""Unit tests for auth/session.py -- SessionManager.

Tests focus on:
- Which tiers create() writes for persistent and non-persistent sessions
- Read-repair from the durable tier after a restart
- Corrupt and expired tokens are discarded, never surfaced
- touch() after destroy() or replacement does nothing
- Degrading to memory-only when storage fails
"""

import threading

import pytest

from auth.codec import SignedCodec
from auth.errors import SessionCorrupt
from auth.models import Credential, Role, SessionRecord
from auth.session import DURABLE_KEY, EPHEMERAL_KEY, SessionManager, format_duration
from storage.store import StorageUnavailable, Tier, TieredKeyValueStore

# ---------------------------------------------------------------------------
# Shared test data
# ---------------------------------------------------------------------------

_ALICE = Credential("alice@example.com", "unused-hash", Role.standard)
_ROOT = Credential("root@example.com", "unused-hash", Role.admin)


class FlakyStore(TieredKeyValueStore):
    """TieredKeyValueStore that can be switched into failing every call."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.failing = False

    def _maybe_fail(self):
        if self.failing:
            raise StorageUnavailable("disk on fire")

    def get(self, key, tier=None):
        self._maybe_fail()
        return super().get(key, tier)

    def put(self, key, value, tier):
        self._maybe_fail()
        super().put(key, value, tier)

    def remove(self, key):
        self._maybe_fail()
        super().remove(key)


# ---------------------------------------------------------------------------
# create()
# ---------------------------------------------------------------------------


class TestCreate:
    def test_non_persistent_writes_ephemeral_only(self, sessions, kv_store):
        record = sessions.create(_ALICE, persistent=False)
        assert record.principal_id == "alice@example.com"
        assert record.issued_at == record.last_activity_at
        assert kv_store.get(EPHEMERAL_KEY, Tier.ephemeral) is not None
        assert kv_store.get(DURABLE_KEY, Tier.durable) is None
        assert sessions.last_write_ok is True

    def test_persistent_writes_both_tiers(self, sessions, kv_store):
        sessions.create(_ALICE, persistent=True)
        assert kv_store.get(EPHEMERAL_KEY, Tier.ephemeral) is not None
        assert kv_store.get(DURABLE_KEY, Tier.durable) is not None

    def test_non_persistent_login_clears_earlier_remember(self, sessions, kv_store):
        sessions.create(_ALICE, persistent=True)
        sessions.create(_ROOT, persistent=False)
        assert kv_store.get(DURABLE_KEY, Tier.durable) is None
        assert sessions.current().principal_id == "root@example.com"

    def test_session_id_format(self, sessions):
        record = sessions.create(_ALICE, persistent=False)
        prefix, millis, random_part = record.session_id.split("_")
        assert prefix == "sess"
        assert millis.isdigit()
        assert len(random_part) == 16

    def test_returned_record_is_a_copy(self, sessions):
        record = sessions.create(_ALICE, persistent=False)
        record.last_activity_at = 0
        assert sessions.current().last_activity_at != 0


# ---------------------------------------------------------------------------
# current()
# ---------------------------------------------------------------------------


class TestCurrent:
    def test_none_when_nothing_stored(self, sessions):
        assert sessions.current() is None

    def test_returns_created_session(self, sessions):
        created = sessions.create(_ALICE, persistent=False)
        assert sessions.current() == created

    def test_restart_restores_persistent_and_repairs_ephemeral(self, db_path, codec, clock):
        first = TieredKeyValueStore(db_path)
        created = SessionManager(first, codec, clock=clock).create(_ALICE, persistent=True)
        first.close()

        second = TieredKeyValueStore(db_path)
        try:
            restored = SessionManager(second, codec, clock=clock).current()
            assert restored == created
            assert second.get(EPHEMERAL_KEY, Tier.ephemeral) is not None
        finally:
            second.close()

    def test_restart_forgets_non_persistent(self, db_path, codec, clock):
        first = TieredKeyValueStore(db_path)
        SessionManager(first, codec, clock=clock).create(_ALICE, persistent=False)
        first.close()

        second = TieredKeyValueStore(db_path)
        try:
            assert SessionManager(second, codec, clock=clock).current() is None
        finally:
            second.close()

    def test_repair_false_does_not_write(self, db_path, codec, clock):
        first = TieredKeyValueStore(db_path)
        SessionManager(first, codec, clock=clock).create(_ALICE, persistent=True)
        first.close()

        second = TieredKeyValueStore(db_path)
        try:
            assert SessionManager(second, codec, clock=clock).current(repair=False) is not None
            assert second.get(EPHEMERAL_KEY, Tier.ephemeral) is None
        finally:
            second.close()

    def test_corrupt_token_discarded(self, sessions, kv_store):
        kv_store.put(EPHEMERAL_KEY, "not-a-token", Tier.ephemeral)
        kv_store.put(DURABLE_KEY, "not-a-token", Tier.durable)
        assert sessions.current() is None
        assert kv_store.get(EPHEMERAL_KEY) is None
        assert kv_store.get(DURABLE_KEY) is None

    def test_corrupt_ephemeral_falls_back_to_durable(self, sessions, kv_store):
        created = sessions.create(_ALICE, persistent=True)
        durable = kv_store.get(DURABLE_KEY, Tier.durable)
        kv_store.put(EPHEMERAL_KEY, "not-a-token", Tier.ephemeral)
        assert sessions.current() == created
        assert kv_store.get(DURABLE_KEY, Tier.durable) == durable
        assert kv_store.get(EPHEMERAL_KEY, Tier.ephemeral) == durable

    def test_corrupt_token_kept_without_repair(self, sessions, kv_store):
        kv_store.put(EPHEMERAL_KEY, "not-a-token", Tier.ephemeral)
        assert sessions.current(repair=False) is None
        assert kv_store.get(EPHEMERAL_KEY) == "not-a-token"

    def test_token_from_other_key_discarded(self, sessions, kv_store, clock):
        foreign = SignedCodec("f" * 64, clock=clock)
        other = SessionManager(kv_store, foreign, clock=clock)
        other.create(_ALICE, persistent=False)
        assert sessions.current() is None

    def test_token_past_max_age_discarded(self, sessions, kv_store, clock):
        sessions.create(_ALICE, persistent=True)
        clock.advance(31 * 24 * 60 * 60)
        assert sessions.current() is None
        assert kv_store.get(DURABLE_KEY) is None


# ---------------------------------------------------------------------------
# is_valid() and touch()
# ---------------------------------------------------------------------------


class TestValidity:
    def test_none_is_invalid(self, sessions):
        assert sessions.is_valid(None) is False

    def test_fresh_session_valid(self, sessions):
        assert sessions.is_valid(sessions.create(_ALICE, persistent=False))

    def test_invalid_after_timeout(self, sessions, clock):
        record = sessions.create(_ALICE, persistent=False)
        clock.advance(sessions.session_timeout_seconds - 1)
        assert sessions.is_valid(record)
        clock.advance(1)
        assert not sessions.is_valid(record)

    def test_touch_slides_window(self, sessions, clock):
        record = sessions.create(_ALICE, persistent=False)
        clock.advance(sessions.session_timeout_seconds - 10)
        refreshed = sessions.touch(record)
        assert refreshed.last_activity_at == clock()
        assert record.last_activity_at == clock()
        clock.advance(sessions.session_timeout_seconds - 10)
        assert sessions.is_valid(sessions.current())

    def test_touch_persists(self, sessions, clock):
        record = sessions.create(_ALICE, persistent=True)
        clock.advance(42)
        sessions.touch(record)
        assert sessions.current().last_activity_at == clock()
        assert sessions.current().issued_at == record.issued_at

    def test_touch_after_destroy_is_noop(self, sessions, kv_store):
        record = sessions.create(_ALICE, persistent=True)
        sessions.destroy()
        assert sessions.touch(record) is None
        assert sessions.current() is None
        assert kv_store.get(EPHEMERAL_KEY) is None
        assert kv_store.get(DURABLE_KEY) is None

    def test_touch_replaced_session_is_noop(self, sessions):
        old = sessions.create(_ALICE, persistent=False)
        new = sessions.create(_ROOT, persistent=False)
        assert sessions.touch(old) is None
        assert sessions.current().session_id == new.session_id

    def test_concurrent_touch_cannot_resurrect_destroyed_session(self, sessions):
        record = sessions.create(_ALICE, persistent=True)
        start = threading.Event()

        def toucher():
            start.wait()
            for _ in range(50):
                sessions.touch(record)

        threads = [threading.Thread(target=toucher) for _ in range(4)]
        for t in threads:
            t.start()
        start.set()
        sessions.destroy()
        for t in threads:
            t.join()
        assert sessions.current() is None


# ---------------------------------------------------------------------------
# destroy() and stats()
# ---------------------------------------------------------------------------


class TestDestroyAndStats:
    def test_destroy_is_idempotent(self, sessions):
        sessions.destroy()
        sessions.create(_ALICE, persistent=True)
        sessions.destroy()
        sessions.destroy()
        assert sessions.current() is None

    def test_destroy_by_id_spares_replacement(self, sessions):
        old = sessions.create(_ALICE, persistent=True)
        new = sessions.create(_ROOT, persistent=True)
        assert sessions.destroy(old.session_id) is False
        assert sessions.current() == new
        assert sessions.destroy(new.session_id) is True
        assert sessions.current() is None

    def test_stats_none_without_session(self, sessions):
        assert sessions.stats() is None

    def test_stats_fields(self, sessions, clock):
        record = sessions.create(_ROOT, persistent=True)
        clock.advance(3725)
        stats = sessions.stats()
        assert stats["principal"] == {"id": "root@example.com", "role": "admin"}
        session = stats["session"]
        assert session["sessionId"] == record.session_id[:10] + "..."
        assert session["duration"] == "1h 2m"
        assert session["idle"] == "1h 2m"
        assert session["isValid"] is True
        assert session["persistent"] is True
        assert session["issuedAt"].startswith("2023-11-14T22:13:20")


class TestFormatDuration:
    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "0s"), (59, "59s"), (61, "1m 1s"), (3600, "1h 0m"), (7385, "2h 3m"), (-5, "0s")],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


# ---------------------------------------------------------------------------
# Storage failure
# ---------------------------------------------------------------------------


class TestStorageFailure:
    @pytest.fixture
    def flaky(self, db_path):
        store = FlakyStore(db_path)
        yield store
        store.failing = False
        store.close()

    def test_create_degrades_to_memory(self, flaky, codec, clock):
        sessions = SessionManager(flaky, codec, clock=clock)
        flaky.failing = True
        record = sessions.create(_ALICE, persistent=True)
        assert sessions.last_write_ok is False
        assert sessions.current() == record

    def test_unreadable_store_returns_cached(self, flaky, codec, clock):
        sessions = SessionManager(flaky, codec, clock=clock)
        record = sessions.create(_ALICE, persistent=False)
        assert sessions.last_write_ok is True
        flaky.failing = True
        assert sessions.current() == record

    def test_destroy_with_failing_store_still_forgets(self, flaky, codec, clock):
        sessions = SessionManager(flaky, codec, clock=clock)
        flaky.failing = True
        sessions.create(_ALICE, persistent=False)
        sessions.destroy()
        assert sessions.current() is None


# ---------------------------------------------------------------------------
# SessionRecord payloads
# ---------------------------------------------------------------------------


class TestSessionRecordPayload:
    def test_round_trip(self):
        record = SessionRecord("a@b.com", Role.admin, 1.0, 2.0, "sess_1_ab", persistent=True)
        assert SessionRecord.from_payload(record.to_payload()) == record

    def test_payload_keys(self):
        payload = SessionRecord("a@b.com", Role.standard, 1.0, 2.0, "sess_1_ab").to_payload()
        assert set(payload) == {"principalId", "role", "issuedAt", "lastActivityAt", "sessionId", "persistent"}

    @pytest.mark.parametrize(
        "broken",
        [
            {},
            {"principalId": "", "role": "standard", "issuedAt": 1, "lastActivityAt": 1, "sessionId": "s"},
            {"principalId": "a", "role": "root", "issuedAt": 1, "lastActivityAt": 1, "sessionId": "s"},
            {"principalId": "a", "role": "standard", "issuedAt": "x", "lastActivityAt": 1, "sessionId": "s"},
            {"principalId": "a", "role": "standard", "issuedAt": 1, "lastActivityAt": 1, "sessionId": 7},
        ],
    )
    def test_malformed_payload_is_corrupt(self, broken):
        with pytest.raises(SessionCorrupt):
            SessionRecord.from_payload(broken)
