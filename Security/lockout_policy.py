"""
LOGIN LOCKOUT POLICY
====================
Pure state machine for escalating login lockouts.
"""

# FLOW:
# - record_failure() counts failures and opens a lockout window on threshold.
# - is_locked_out()/normalize() decide lock status and clear expired windows.
# - record_success() returns the initial state.
# HOW:
# - LockoutState is immutable; every operation returns a new state.
# - Times are epoch milliseconds supplied by the caller.
#
# States: Unlocked (lockout_end_time is None) and Locked (end time set,
# failed_attempts == 0). Locked -> Unlocked happens only through normalize()
# once now >= lockout_end_time, or through record_success().

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any, Optional

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DURATION_MS = 60_000


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_duration_ms: int = DEFAULT_BASE_DURATION_MS
    # None keeps doubling forever.
    max_multiplier: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_duration_ms <= 0:
            raise ValueError("base_duration_ms must be positive")
        if self.max_multiplier is not None and self.max_multiplier < 1:
            raise ValueError("max_multiplier must be at least 1")

    @classmethod
    def from_settings(cls, settings: dict) -> "LockoutPolicy":
        cap = int(settings.get("LOGIN_BACKOFF_CAP", 0) or 0)
        return cls(
            max_attempts=int(settings.get("LOGIN_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)),
            base_duration_ms=int(settings.get("LOGIN_LOCK_BASE_SECONDS", DEFAULT_BASE_DURATION_MS // 1000)) * 1000,
            max_multiplier=cap if cap > 0 else None,
        )


@dataclass(frozen=True)
class LockoutState:
    failed_attempts: int = 0
    lockout_end_time: Optional[int] = None
    backoff_multiplier: int = 1


INITIAL_STATE = LockoutState()


def is_locked_out(state: LockoutState, now: int) -> bool:
    return state.lockout_end_time is not None and now < state.lockout_end_time


def normalize(state: LockoutState, now: int) -> LockoutState:
    """Clear an expired lockout window. Returns ``state`` itself when nothing changes."""
    if state.lockout_end_time is not None and now >= state.lockout_end_time:
        return replace(state, lockout_end_time=None)
    return state


def remaining_lockout_seconds(state: LockoutState, now: int) -> int:
    if not is_locked_out(state, now):
        return 0
    # ceil division on integers; positive because now < end
    return -(-(state.lockout_end_time - now) // 1000)


def record_failure(state: LockoutState, now: int, policy: LockoutPolicy = LockoutPolicy()) -> LockoutState:
    attempts = state.failed_attempts + 1
    if attempts < policy.max_attempts:
        return replace(state, failed_attempts=attempts)

    multiplier = state.backoff_multiplier
    next_multiplier = multiplier * 2
    if policy.max_multiplier is not None:
        next_multiplier = min(next_multiplier, policy.max_multiplier)
    return LockoutState(
        failed_attempts=0,
        lockout_end_time=now + policy.base_duration_ms * multiplier,
        backoff_multiplier=next_multiplier,
    )


def record_success(state: LockoutState | None = None) -> LockoutState:
    return INITIAL_STATE


def current_window_ms(
    state: LockoutState, policy: LockoutPolicy = LockoutPolicy(), now: int | None = None
) -> int:
    """Length of the window that produced the active lockout.

    The multiplier is doubled when the window opens, so the window itself used
    half of the stored value. At the ceiling the stored value is the same for
    the window that reached it and for every later one; with ``now`` given, a
    remaining wait that fits in the half-length window is taken as that one.
    """
    multiplier = state.backoff_multiplier
    half = max(1, multiplier // 2)
    if policy.max_multiplier is None or multiplier < policy.max_multiplier:
        return policy.base_duration_ms * half
    if now is not None and state.lockout_end_time is not None:
        if state.lockout_end_time - now <= policy.base_duration_ms * half:
            return policy.base_duration_ms * half
    return policy.base_duration_ms * multiplier


def format_countdown(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def lockout_progress(state: LockoutState, now: int, policy: LockoutPolicy = LockoutPolicy()) -> float:
    """Percentage of the active window still to wait, 0 when unlocked."""
    remaining = remaining_lockout_seconds(state, now)
    if not remaining:
        return 0.0
    window_seconds = current_window_ms(state, policy, now) / 1000
    return round(min(100.0, remaining / window_seconds * 100), 1)


# --- persisted record layout ---

def to_record(state: LockoutState) -> dict[str, Any]:
    return {
        "attempts": state.failed_attempts,
        "lockoutEndTime": state.lockout_end_time,
        "multiplier": state.backoff_multiplier,
    }


def from_record(record: Any) -> LockoutState:
    if not isinstance(record, dict):
        return INITIAL_STATE
    try:
        attempts = max(0, int(record.get("attempts", 0) or 0))
        multiplier = max(1, int(record.get("multiplier", 1) or 1))
        end_time = record.get("lockoutEndTime")
        end_time = int(end_time) if end_time is not None else None
    except (TypeError, ValueError):
        return INITIAL_STATE
    return LockoutState(failed_attempts=attempts, lockout_end_time=end_time, backoff_multiplier=multiplier)


def dumps(state: LockoutState) -> str:
    return json.dumps(to_record(state), separators=(",", ":"))


def loads(raw: str | None) -> LockoutState:
    if not raw:
        return INITIAL_STATE
    try:
        return from_record(json.loads(raw))
    except ValueError:
        return INITIAL_STATE
