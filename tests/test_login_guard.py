"""Tests for LoginAttemptGuard."""

import json
from types import SimpleNamespace

import pytest

from Security.lockout_policy import LockoutPolicy, LockoutState, dumps
from Security.lockout_store import MemoryLockoutStore
from Security.login_attempt_limiting import LoginAttemptGuard, create_login_guard, lockout_client_ip

EMAIL = "Alice@Example.com"


class RecordingCountdown:
    def __init__(self):
        self.armed = {}
        self.cancelled = []

    def arm(self, key, lockout_end_time):
        self.armed[key] = lockout_end_time

    def cancel(self, key):
        self.cancelled.append(key)
        self.armed.pop(key, None)


class TestLoginAttemptGuard:
    def test_fresh_key_is_unlocked(self, guard):
        key = guard.lockout_key(EMAIL)
        status = guard.status(key)
        assert not status.locked
        assert status.remaining_seconds == 0
        assert status.failed_attempts == 0
        assert status.attempts_left == 3

    def test_two_failures_do_not_lock(self, guard):
        key = guard.lockout_key(EMAIL)
        guard.record_failure(key)
        status = guard.record_failure(key)
        assert not status.locked
        assert status.failed_attempts == 2
        assert status.attempts_left == 1

    def test_scenario_a_third_failure_locks_for_sixty_seconds(self, guard):
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            status = guard.record_failure(key)
        assert status.locked
        assert status.remaining_seconds == 60
        assert status.countdown == "1:00"
        assert guard.is_locked_out(key)
        assert guard.remaining_lockout_seconds(key) == 60

    def test_scenario_b_second_lockout_lasts_two_minutes(self, guard, clock):
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        clock.advance(61)
        assert not guard.is_locked_out(key)
        for _ in range(3):
            status = guard.record_failure(key)
        assert status.remaining_seconds == 120
        assert status.backoff_multiplier == 4

    def test_scenario_c_success_resets_multiplier(self, guard, clock):
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        clock.advance(61)
        guard.record_failure(key)
        guard.record_failure(key)
        guard.record_success(key)
        assert guard.store.load(key) == LockoutState(0, None, 1)
        for _ in range(3):
            status = guard.record_failure(key)
        assert status.remaining_seconds == 60

    def test_scenario_d_stale_persisted_lockout_is_cleared_once(self, memory_store, clock):
        key = "loginLockout:alice@example.com"
        memory_store._records[key] = dumps(LockoutState(0, clock.now - 1_000, 4))
        guard = LoginAttemptGuard(memory_store, clock=clock)

        assert not guard.is_locked_out(key)
        assert json.loads(memory_store.raw(key)) == {"attempts": 0, "lockoutEndTime": None, "multiplier": 4}

    def test_expiry_is_audited_once(self, guard, clock, monkeypatch):
        events = []
        monkeypatch.setattr(
            "Security.login_attempt_limiting.audit",
            lambda event, **kwargs: events.append(event),
        )
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        clock.advance(60)
        guard.status(key)
        guard.status(key)
        guard.status(key)
        assert events.count("auth_lockout_expired") == 1
        assert events.count("auth_lockout_triggered") == 1

    def test_unlock_is_monotonic_until_next_threshold(self, guard, clock):
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        clock.advance(60)
        assert not guard.is_locked_out(key)
        clock.advance(-30)
        assert not guard.is_locked_out(key)

    def test_different_identities_are_independent(self, guard):
        alice = guard.lockout_key("alice@example.com")
        bob = guard.lockout_key("bob@example.com")
        for _ in range(3):
            guard.record_failure(alice)
        assert guard.is_locked_out(alice)
        assert not guard.is_locked_out(bob)

    def test_reset_unlocks(self, guard):
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        status = guard.reset(key, actor="admin@example.com")
        assert not status.locked
        assert not guard.is_locked_out(key)

    def test_active_lockouts(self, guard, clock):
        alice = guard.lockout_key("alice@example.com")
        bob = guard.lockout_key("bob@example.com")
        for _ in range(3):
            guard.record_failure(alice)
        guard.record_failure(bob)
        active = guard.active_lockouts()
        assert [key for key, _ in active] == [alice]
        clock.advance(60)
        assert guard.active_lockouts() == []

    def test_countdown_armed_and_cancelled(self, guard, clock):
        countdown = RecordingCountdown()
        guard.attach_countdown(countdown)
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        assert countdown.armed == {key: clock.now + 60_000}

        assert guard.is_locked_out(key)
        assert key not in countdown.cancelled

        clock.advance(60)
        assert not guard.is_locked_out(key)
        assert countdown.armed == {}

    def test_success_cancels_countdown(self, guard):
        countdown = RecordingCountdown()
        guard.attach_countdown(countdown)
        key = guard.lockout_key(EMAIL)
        for _ in range(3):
            guard.record_failure(key)
        guard.record_success(key)
        assert countdown.armed == {}


class TestLockoutKeys:
    @pytest.mark.parametrize(
        "scope, expected",
        [
            ("identity", "loginLockout:alice@example.com"),
            ("identity_ip", "loginLockout:alice@example.com|10.0.0.1"),
            ("ip", "loginLockout:ip:10.0.0.1"),
        ],
    )
    def test_scopes(self, scope, expected):
        guard = LoginAttemptGuard(MemoryLockoutStore(), scope=scope)
        assert guard.lockout_key("  Alice@Example.com ", "10.0.0.1") == expected

    def test_unknown_scope_rejected(self):
        with pytest.raises(ValueError):
            LoginAttemptGuard(MemoryLockoutStore(), scope="device")


def fake_request(peer, **headers):
    return SimpleNamespace(client=SimpleNamespace(host=peer), headers=headers)


class TestLockoutClientIp:
    def test_forwarded_headers_ignored_without_trusted_proxy(self):
        request = fake_request("198.51.100.7", **{"x-forwarded-for": "203.0.113.1", "x-real-ip": "203.0.113.2"})
        assert lockout_client_ip(request, trusted_proxies=()) == "198.51.100.7"

    def test_forwarded_headers_ignored_from_untrusted_peer(self):
        request = fake_request("198.51.100.7", **{"x-forwarded-for": "203.0.113.1"})
        assert lockout_client_ip(request, trusted_proxies=("10.0.0.0/8",)) == "198.51.100.7"

    def test_trusted_proxy_chain_walked_from_the_right(self):
        request = fake_request("10.0.0.2", **{"x-forwarded-for": "1.2.3.4, 203.0.113.9, 10.0.0.5"})
        assert lockout_client_ip(request, trusted_proxies=("10.0.0.0/8",)) == "203.0.113.9"

    def test_trusted_proxy_with_real_ip_header(self):
        request = fake_request("10.0.0.2", **{"x-real-ip": "203.0.113.9"})
        assert lockout_client_ip(request, trusted_proxies=("10.0.0.2",)) == "203.0.113.9"

    def test_missing_peer(self):
        request = SimpleNamespace(client=None, headers={"x-forwarded-for": "203.0.113.1"})
        assert lockout_client_ip(request, trusted_proxies=()) == "unknown"

    def test_bad_trusted_entries_are_skipped(self):
        request = fake_request("10.0.0.2", **{"x-forwarded-for": "203.0.113.9"})
        assert lockout_client_ip(request, trusted_proxies=("not-a-network", "10.0.0.2")) == "203.0.113.9"


def test_factory_reads_settings(clock):
    guard = create_login_guard(
        {
            "LOGIN_MAX_ATTEMPTS": 2,
            "LOGIN_LOCK_BASE_SECONDS": 10,
            "LOGIN_BACKOFF_CAP": 2,
            "LOGIN_LOCKOUT_SCOPE": "identity_ip",
            "LOCKOUT_STORE": "memory",
        },
        clock=clock,
    )
    assert isinstance(guard.store, MemoryLockoutStore)
    assert guard.policy == LockoutPolicy(max_attempts=2, base_duration_ms=10_000, max_multiplier=2)
    assert guard.scope == "identity_ip"

    key = guard.lockout_key(EMAIL, "10.0.0.1")
    guard.record_failure(key)
    assert guard.record_failure(key).remaining_seconds == 10
    clock.advance(10)
    guard.record_failure(key)
    assert guard.record_failure(key).remaining_seconds == 20
    clock.advance(20)
    guard.record_failure(key)
    assert guard.record_failure(key).remaining_seconds == 20
