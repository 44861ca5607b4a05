"""Tests for OTPStore — in-memory challenge store with expiry heap.

Covers:
- put/get/delete: one live challenge per key, overwrite semantics
- increment_attempts: failure counting
- sweep_expired: strict expiry boundary, stale heap entries, idempotence
- clear
"""

from datetime import timedelta

import pytest

from ridepool.services.otp_store import OTPChallenge, OTPStore
from tests.conftest import T0, FakeClock

_KEY = "+919876543210"
_TTL = timedelta(minutes=10)


def _challenge(
    key: str = _KEY,
    code: str = "123456",
    *,
    issued_at=T0,
    ttl: timedelta = _TTL,
) -> OTPChallenge:
    return OTPChallenge(
        key=key,
        code=code,
        purpose="login",
        issued_at=issued_at,
        expires_at=issued_at + ttl,
    )


@pytest.fixture
def store() -> OTPStore:
    return OTPStore(clock=FakeClock())


class TestPutGet:
    def test_get_returns_stored_challenge(self, store: OTPStore) -> None:
        challenge = _challenge()
        store.put(challenge)
        assert store.get(_KEY) is challenge

    def test_get_unknown_key_returns_none(self, store: OTPStore) -> None:
        assert store.get("nobody@example.com") is None

    def test_put_overwrites_existing_challenge(self, store: OTPStore) -> None:
        """Issuing again replaces the old code; only one challenge per key."""
        store.put(_challenge(code="111111"))
        store.put(_challenge(code="222222"))
        assert store.get(_KEY).code == "222222"
        assert len(store) == 1

    def test_overwrite_resets_attempts(self, store: OTPStore) -> None:
        store.put(_challenge())
        store.increment_attempts(_KEY)
        store.put(_challenge(code="654321"))
        assert store.get(_KEY).attempts_used == 0

    def test_contains(self, store: OTPStore) -> None:
        store.put(_challenge())
        assert _KEY in store
        assert "other" not in store


class TestDelete:
    def test_delete_removes_challenge(self, store: OTPStore) -> None:
        store.put(_challenge())
        assert store.delete(_KEY) is True
        assert store.get(_KEY) is None

    def test_delete_missing_returns_false(self, store: OTPStore) -> None:
        assert store.delete(_KEY) is False


class TestIncrementAttempts:
    def test_increment_returns_new_count(self, store: OTPStore) -> None:
        store.put(_challenge())
        assert store.increment_attempts(_KEY) == 1
        assert store.increment_attempts(_KEY) == 2
        assert store.get(_KEY).attempts_used == 2

    def test_increment_missing_key_raises(self, store: OTPStore) -> None:
        with pytest.raises(KeyError):
            store.increment_attempts(_KEY)


class TestSweepExpired:
    def test_sweep_removes_only_expired(self, store: OTPStore) -> None:
        store.put(_challenge("a@example.com", ttl=timedelta(minutes=1)))
        store.put(_challenge("b@example.com", ttl=timedelta(minutes=20)))

        removed = store.sweep_expired(T0 + timedelta(minutes=5))

        assert removed == 1
        assert store.get("a@example.com") is None
        assert store.get("b@example.com") is not None

    def test_sweep_keeps_challenge_at_exact_expiry(self, store: OTPStore) -> None:
        """Removal requires expires_at strictly before now."""
        store.put(_challenge())
        assert store.sweep_expired(T0 + _TTL) == 0
        assert store.get(_KEY) is not None

    def test_sweep_is_idempotent(self, store: OTPStore) -> None:
        store.put(_challenge())
        later = T0 + _TTL + timedelta(seconds=1)
        assert store.sweep_expired(later) == 1
        assert store.sweep_expired(later) == 0

    def test_stale_heap_entry_does_not_evict_newer_challenge(
        self, store: OTPStore
    ) -> None:
        """Re-issuing leaves the old expiry in the heap; it must be ignored."""
        store.put(_challenge(code="111111"))
        reissued = _challenge(code="222222", issued_at=T0 + timedelta(minutes=9))
        store.put(reissued)

        removed = store.sweep_expired(T0 + timedelta(minutes=11))

        assert removed == 0
        assert store.get(_KEY) is reissued

    def test_sweep_after_delete_removes_nothing(self, store: OTPStore) -> None:
        store.put(_challenge())
        store.delete(_KEY)
        assert store.sweep_expired(T0 + timedelta(hours=1)) == 0

    def test_sweep_defaults_to_store_clock(self) -> None:
        clock = FakeClock()
        store = OTPStore(clock=clock)
        store.put(_challenge())
        clock.advance(minutes=11)
        assert store.sweep_expired() == 1


class TestClear:
    def test_clear_drops_everything(self, store: OTPStore) -> None:
        store.put(_challenge("a@example.com"))
        store.put(_challenge("b@example.com"))
        store.clear()
        assert len(store) == 0
        assert store.sweep_expired(T0 + timedelta(hours=1)) == 0
