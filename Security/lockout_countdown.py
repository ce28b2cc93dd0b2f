"""
LOCKOUT EXPIRY SCHEDULER
========================
One scheduled wake-up per locked key, fired at the exact expiry instant.
"""

# FLOW:
# - LoginAttemptGuard calls arm() when a window opens and cancel() once the
#   key is seen unlocked.
# - on_expiry() runs in the scheduler thread and lets the guard clear the
#   expired window.
# HOW:
# - APScheduler date trigger, job id derived from the key, replace_existing
#   so a key never has more than one live job.
# - Timers carry no state: a lost timer only delays normalisation until the
#   next status check.

from __future__ import annotations

import datetime
import logging

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from Security.metrics import set_expiry_timers
from Security.secrets_redaction import mask_lockout_key

logger = logging.getLogger("security.lockout.countdown")

JOB_PREFIX = "lockout-expiry:"


class LockoutExpiryScheduler:
    def __init__(self, guard, scheduler: BackgroundScheduler | None = None) -> None:
        self._guard = guard
        self._scheduler = scheduler or BackgroundScheduler(timezone=datetime.timezone.utc)

    @staticmethod
    def job_id(key: str) -> str:
        return f"{JOB_PREFIX}{key}"

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self, rearm: bool = True) -> None:
        """Start the scheduler thread and attach to the guard."""
        if not self._scheduler.running:
            self._scheduler.start()
        self._guard.attach_countdown(self)
        if rearm:
            self.rearm_active()

    def shutdown(self) -> None:
        self._guard.attach_countdown(None)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def arm(self, key: str, lockout_end_time: int) -> None:
        run_date = datetime.datetime.fromtimestamp(lockout_end_time / 1000, tz=datetime.timezone.utc)
        self._scheduler.add_job(
            self.on_expiry,
            "date",
            run_date=run_date,
            args=[key],
            id=self.job_id(key),
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug("Armed lockout expiry key=%s at=%s", mask_lockout_key(key), run_date.isoformat())
        set_expiry_timers(len(self.armed_keys()))

    def cancel(self, key: str) -> None:
        try:
            self._scheduler.remove_job(self.job_id(key))
        except JobLookupError:
            return
        logger.debug("Cancelled lockout expiry key=%s", mask_lockout_key(key))
        set_expiry_timers(len(self.armed_keys()))

    def is_armed(self, key: str) -> bool:
        return self._scheduler.get_job(self.job_id(key)) is not None

    def armed_keys(self) -> list[str]:
        return [job.id[len(JOB_PREFIX):] for job in self._scheduler.get_jobs() if job.id.startswith(JOB_PREFIX)]

    def rearm_active(self) -> int:
        active = self._guard.active_lockouts()
        for key, status in active:
            self.arm(key, status.lockout_end_time)
        if active:
            logger.info("Re-armed %s persisted lockout(s)", len(active))
        return len(active)

    def on_expiry(self, key: str) -> None:
        try:
            status = self._guard.status(key)
        except Exception:
            logger.exception("Lockout expiry check failed key=%s", mask_lockout_key(key))
            return
        if status.locked:
            # Fired early (clock skew) or a newer window replaced the old one.
            self.arm(key, status.lockout_end_time)
        else:
            logger.info("Lockout expired key=%s", mask_lockout_key(key))
