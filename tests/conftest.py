import os
import tempfile
import time

# Settings are read at import time, so point them at a scratch directory first.
_SCRATCH = tempfile.mkdtemp(prefix="backoffice-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_SCRATCH, 'test.db')}"
os.environ["LOG_DIR"] = os.path.join(_SCRATCH, "logs")
os.environ["SESSION_SECRET_KEY"] = "test-session-secret"
os.environ["LOGIN_LOCKOUT_SCOPE"] = "identity"
os.environ["LOCKOUT_STORE"] = "database"
os.environ["LOGIN_MAX_ATTEMPTS"] = "3"
os.environ["LOGIN_LOCK_BASE_SECONDS"] = "60"
os.environ["LOGIN_BACKOFF_CAP"] = "0"

import pytest  # noqa: E402

from Security.lockout_policy import LockoutPolicy  # noqa: E402
from Security.lockout_store import MemoryLockoutStore  # noqa: E402
from Security.login_attempt_limiting import LoginAttemptGuard  # noqa: E402


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start: int | None = None) -> None:
        # starts at wall-clock time so scheduled wake-ups land in the future
        self.now = start if start is not None else int(time.time() * 1000)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryLockoutStore()


@pytest.fixture
def guard(memory_store, clock):
    return LoginAttemptGuard(memory_store, policy=LockoutPolicy(), clock=clock)


@pytest.fixture
def db_tables():
    from backoffice.database import Base, engine, init_db

    init_db()
    yield
    Base.metadata.drop_all(bind=engine)
