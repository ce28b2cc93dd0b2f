"""
LOCKOUT STORE
=============
Durable key-value persistence for login lockout records.
"""

# FLOW:
# - update(key, mutate) loads a record, applies mutate() and saves the result.
# - load(key) reads without locking; items() lists every record.
# HOW:
# - Values are the JSON layout from lockout_policy.dumps().
# - Read-modify-write holds a per-key lock; the database store also takes a
#   row lock (SELECT ... FOR UPDATE) where the backend supports it.
#   A first insert that loses a race with another process is retried once
#   against the row the other process created.
# - Unchanged states are not written back.

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.exc import IntegrityError

from Security.lockout_policy import LockoutState, dumps, loads
from Security.secrets_redaction import mask_lockout_key

logger = logging.getLogger("security.lockout.store")

Mutator = Callable[[LockoutState], LockoutState]


class KeyedLocks:
    """One lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class MemoryLockoutStore:
    """Process-local store, used for single-worker deployments and tests."""

    def __init__(self) -> None:
        self._records: dict[str, str] = {}
        self._locks = KeyedLocks()

    def raw(self, key: str) -> str | None:
        return self._records.get(key)

    def load(self, key: str) -> LockoutState:
        return loads(self._records.get(key))

    def update(self, key: str, mutate: Mutator) -> tuple[LockoutState, LockoutState]:
        with self._locks.hold(key):
            before = loads(self._records.get(key))
            after = mutate(before)
            if after != before:
                self._records[key] = dumps(after)
            return before, after

    def delete(self, key: str) -> None:
        with self._locks.hold(key):
            self._records.pop(key, None)

    def items(self) -> list[tuple[str, LockoutState]]:
        return [(key, loads(raw)) for key, raw in list(self._records.items())]


class DatabaseLockoutStore:
    """SQLAlchemy-backed store: one ``login_lockouts`` row per key."""

    def __init__(self, session_factory, model=None) -> None:
        if model is None:
            from backoffice.models import LoginLockout

            model = LoginLockout
        self._session_factory = session_factory
        self._model = model
        self._locks = KeyedLocks()

    def raw(self, key: str) -> str | None:
        db = self._session_factory()
        try:
            row = db.get(self._model, key)
            return row.value if row else None
        finally:
            db.close()

    def load(self, key: str) -> LockoutState:
        return loads(self.raw(key))

    def update(self, key: str, mutate: Mutator) -> tuple[LockoutState, LockoutState]:
        with self._locks.hold(key):
            try:
                return self._update_once(key, mutate)
            except IntegrityError:
                logger.info("Lockout record for key=%s was created concurrently, retrying", mask_lockout_key(key))
            try:
                return self._update_once(key, mutate)
            except IntegrityError:
                logger.exception("Lockout record update failed for key=%s", mask_lockout_key(key))
                raise

    def _update_once(self, key: str, mutate: Mutator) -> tuple[LockoutState, LockoutState]:
        model = self._model
        db = self._session_factory()
        try:
            row = db.query(model).filter(model.key == key).with_for_update().first()
            before = loads(row.value if row else None)
            after = mutate(before)
            if after != before:
                if row is None:
                    db.add(model(key=key, value=dumps(after)))
                else:
                    row.value = dumps(after)
            db.commit()
            return before, after
        except IntegrityError:
            db.rollback()
            raise
        except Exception:
            db.rollback()
            logger.exception("Lockout record update failed for key=%s", mask_lockout_key(key))
            raise
        finally:
            db.close()

    def delete(self, key: str) -> None:
        model = self._model
        with self._locks.hold(key):
            db = self._session_factory()
            try:
                db.query(model).filter(model.key == key).delete()
                db.commit()
            finally:
                db.close()

    def items(self) -> list[tuple[str, LockoutState]]:
        db = self._session_factory()
        try:
            return [(row.key, loads(row.value)) for row in db.query(self._model).all()]
        finally:
            db.close()
