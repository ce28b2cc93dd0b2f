"""
BRUTE-FORCE ATTACK PREVENTION
==============================
Login attempt guard with escalating lockout windows.
"""

# FLOW:
# - Caller derives a key with lockout_key() and checks status() first.
# - A locked key must not reach the credential check.
# - Caller reports the outcome with record_failure()/record_success().
# HOW:
# - Every operation is one atomic read-modify-write on the store.
# - Expired windows are cleared (and audited) the first time they are seen.
# - An attached countdown is armed when a window opens and cancelled once
#   the key is found unlocked.

from __future__ import annotations

import ipaddress
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from Security import lockout_policy as policy_ops
from Security.audit_trail import audit
from Security.lockout_policy import LockoutPolicy, LockoutState
from Security.lockout_store import DatabaseLockoutStore, MemoryLockoutStore
from Security.metrics import record_lockout_triggered
from Security.secrets_redaction import mask_lockout_key
from Security.security_config import LOCKOUT_SCOPES, SECURITY_SETTINGS

logger = logging.getLogger("security.lockout")

KEY_PREFIX = "loginLockout"


def epoch_millis() -> int:
    return int(time.time() * 1000)


def _trusted_networks(entries) -> list:
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("Ignoring TRUSTED_PROXIES entry %r", entry)
    return networks


def _is_trusted(host: str, networks) -> bool:
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(address in network for network in networks)


def lockout_client_ip(request, trusted_proxies=None) -> str:
    """Client address used for IP-scoped lockout keys.

    Forwarding headers are only believed when the connecting peer is a
    trusted proxy; the chain is then walked from the right and the first
    hop that is not itself a trusted proxy is returned.
    """
    peer = request.client.host if request.client and request.client.host else "unknown"
    if trusted_proxies is None:
        trusted_proxies = SECURITY_SETTINGS.get("TRUSTED_PROXIES", ())
    networks = _trusted_networks(trusted_proxies)
    if not networks or not _is_trusted(peer, networks):
        return peer

    hops = [hop.strip() for hop in (request.headers.get("x-forwarded-for") or "").split(",") if hop.strip()]
    for hop in reversed(hops):
        if not _is_trusted(hop, networks):
            return hop
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return hops[0] if hops else peer


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    remaining_seconds: int
    failed_attempts: int
    max_attempts: int
    lockout_end_time: Optional[int]
    backoff_multiplier: int
    progress: float = 0.0

    @property
    def countdown(self) -> str:
        return policy_ops.format_countdown(self.remaining_seconds)

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.failed_attempts)

    def to_dict(self) -> dict:
        return {
            "locked": self.locked,
            "remaining_seconds": self.remaining_seconds,
            "countdown": self.countdown,
            "progress": self.progress,
            "failed_attempts": self.failed_attempts,
            "max_attempts": self.max_attempts,
            "attempts_left": self.attempts_left,
            "lockout_end_time": self.lockout_end_time,
            "backoff_multiplier": self.backoff_multiplier,
        }


class LoginAttemptGuard:
    def __init__(
        self,
        store,
        policy: LockoutPolicy | None = None,
        clock: Callable[[], int] | None = None,
        scope: str = "identity",
    ) -> None:
        if scope not in LOCKOUT_SCOPES:
            raise ValueError(f"unknown lockout scope: {scope!r}")
        self.store = store
        self.policy = policy or LockoutPolicy()
        self.scope = scope
        self._clock = clock or epoch_millis
        self._countdown = None

    def attach_countdown(self, countdown) -> None:
        """Hook a LockoutExpiryScheduler (or None to detach)."""
        self._countdown = countdown

    def now(self) -> int:
        return self._clock()

    def lockout_key(self, identifier: str | None, client_ip: str | None = None) -> str:
        identity = (identifier or "").strip().lower()
        ip = (client_ip or "").strip() or "unknown"
        if self.scope == "ip":
            return f"{KEY_PREFIX}:ip:{ip}"
        if self.scope == "identity_ip":
            return f"{KEY_PREFIX}:{identity}|{ip}"
        return f"{KEY_PREFIX}:{identity}"

    def _status(self, state: LockoutState, now: int) -> LockoutStatus:
        return LockoutStatus(
            locked=policy_ops.is_locked_out(state, now),
            remaining_seconds=policy_ops.remaining_lockout_seconds(state, now),
            failed_attempts=state.failed_attempts,
            max_attempts=self.policy.max_attempts,
            lockout_end_time=state.lockout_end_time,
            backoff_multiplier=state.backoff_multiplier,
            progress=policy_ops.lockout_progress(state, now, self.policy),
        )

    def _note_expiry(self, key: str, before: LockoutState, after: LockoutState) -> None:
        if before.lockout_end_time is not None and after.lockout_end_time is None:
            audit("auth_lockout_expired", identity=key, details=f"multiplier={after.backoff_multiplier}")

    def status(self, key: str) -> LockoutStatus:
        now = self.now()
        before, after = self.store.update(key, lambda state: policy_ops.normalize(state, now))
        self._note_expiry(key, before, after)
        status = self._status(after, now)
        if not status.locked and self._countdown is not None:
            self._countdown.cancel(key)
        return status

    def is_locked_out(self, key: str) -> bool:
        return self.status(key).locked

    def remaining_lockout_seconds(self, key: str) -> int:
        return self.status(key).remaining_seconds

    def record_failure(self, key: str) -> LockoutStatus:
        now = self.now()

        def _apply(state: LockoutState) -> LockoutState:
            return policy_ops.record_failure(policy_ops.normalize(state, now), now, self.policy)

        before, after = self.store.update(key, _apply)
        self._note_expiry(key, before, policy_ops.normalize(before, now))
        status = self._status(after, now)

        if after.lockout_end_time is not None and after.lockout_end_time != before.lockout_end_time:
            record_lockout_triggered()
            logger.warning(
                "Lockout triggered key=%s seconds=%s next_multiplier=%s",
                mask_lockout_key(key),
                status.remaining_seconds,
                after.backoff_multiplier,
            )
            audit(
                "auth_lockout_triggered",
                identity=key,
                details=f"seconds={status.remaining_seconds};next_multiplier={after.backoff_multiplier}",
            )
            if self._countdown is not None:
                self._countdown.arm(key, after.lockout_end_time)
        return status

    def record_success(self, key: str) -> LockoutStatus:
        now = self.now()
        self.store.update(key, policy_ops.record_success)
        if self._countdown is not None:
            self._countdown.cancel(key)
        return self._status(policy_ops.INITIAL_STATE, now)

    def reset(self, key: str, actor: str | None = None) -> LockoutStatus:
        status = self.record_success(key)
        audit("auth_lockout_reset", identity=key, details=f"by={actor or 'system'}")
        return status

    def active_lockouts(self) -> list[tuple[str, LockoutStatus]]:
        now = self.now()
        active = []
        for key, state in self.store.items():
            if policy_ops.is_locked_out(state, now):
                active.append((key, self._status(state, now)))
        return active


def create_login_guard(
    settings: dict | None = None,
    session_factory=None,
    clock: Callable[[], int] | None = None,
) -> LoginAttemptGuard:
    settings = settings or SECURITY_SETTINGS
    if settings.get("LOCKOUT_STORE") == "memory" or session_factory is None:
        store = MemoryLockoutStore()
    else:
        store = DatabaseLockoutStore(session_factory)
    return LoginAttemptGuard(
        store,
        policy=LockoutPolicy.from_settings(settings),
        clock=clock,
        scope=settings.get("LOGIN_LOCKOUT_SCOPE", "identity"),
    )
