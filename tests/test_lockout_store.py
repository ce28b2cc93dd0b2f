"""Tests for lockout record persistence."""

import json
import threading

import pytest

from Security.lockout_policy import INITIAL_STATE, LockoutPolicy, LockoutState, record_failure
from Security.lockout_store import DatabaseLockoutStore, KeyedLocks, MemoryLockoutStore

NOW = 1_700_000_000_000
KEY = "loginLockout:alice@example.com"


@pytest.fixture(params=["memory", "database"])
def store(request):
    if request.param == "memory":
        yield MemoryLockoutStore()
        return
    request.getfixturevalue("db_tables")
    from backoffice.database import SessionLocal

    yield DatabaseLockoutStore(SessionLocal)


def test_missing_key_loads_initial_state(store):
    assert store.load(KEY) == INITIAL_STATE
    assert store.raw(KEY) is None


def test_update_persists_json_layout(store):
    before, after = store.update(KEY, lambda s: LockoutState(0, NOW + 60_000, 2))
    assert before == INITIAL_STATE
    assert after == LockoutState(0, NOW + 60_000, 2)
    assert json.loads(store.raw(KEY)) == {"attempts": 0, "lockoutEndTime": NOW + 60_000, "multiplier": 2}
    assert store.load(KEY) == after


def test_unchanged_initial_state_is_not_written(store):
    store.update(KEY, lambda s: s)
    assert store.raw(KEY) is None
    assert store.items() == []


def test_keys_are_independent(store):
    other = "loginLockout:bob@example.com"
    store.update(KEY, lambda s: LockoutState(2, None, 1))
    assert store.load(other) == INITIAL_STATE
    store.delete(KEY)
    assert store.load(KEY) == INITIAL_STATE


def test_items_lists_records(store):
    store.update(KEY, lambda s: LockoutState(1, None, 1))
    store.update("loginLockout:bob@example.com", lambda s: LockoutState(0, NOW, 2))
    assert dict(store.items()) == {
        KEY: LockoutState(1, None, 1),
        "loginLockout:bob@example.com": LockoutState(0, NOW, 2),
    }


def test_concurrent_failures_trigger_exactly_one_lockout_per_three(store):
    policy = LockoutPolicy()
    threads = 12
    barrier = threading.Barrier(threads)
    triggered = []

    def fail():
        barrier.wait()
        before, after = store.update(KEY, lambda s: record_failure(s, NOW, policy))
        if after.lockout_end_time is not None and after.lockout_end_time != before.lockout_end_time:
            triggered.append(after.backoff_multiplier)

    workers = [threading.Thread(target=fail) for _ in range(threads)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    # Windows opened at the same instant share an end time only when the
    # multiplier matches, so each trigger shows up with its own multiplier.
    assert sorted(triggered) == [2, 4, 8, 16]
    final = store.load(KEY)
    assert final.failed_attempts == 0
    assert final.backoff_multiplier == 16


def test_keyed_locks_are_released():
    locks = KeyedLocks()
    with locks.hold("a"):
        assert len(locks) == 1
    assert len(locks) == 0


def test_first_failure_from_two_processes_is_not_lost(db_tables):
    from backoffice.database import SessionLocal

    policy = LockoutPolicy()
    worker_a = DatabaseLockoutStore(SessionLocal)
    worker_b = DatabaseLockoutStore(SessionLocal)
    calls = []

    def fail_after_other_worker(state):
        # The other worker inserts the row between our read and our write.
        if not calls:
            worker_b.update(KEY, lambda s: record_failure(s, NOW, policy))
        calls.append(state)
        return record_failure(state, NOW, policy)

    before, after = worker_a.update(KEY, fail_after_other_worker)

    assert calls == [INITIAL_STATE, LockoutState(1, None, 1)]
    assert before == LockoutState(1, None, 1)
    assert after == LockoutState(2, None, 1)
    assert worker_b.load(KEY) == LockoutState(2, None, 1)
