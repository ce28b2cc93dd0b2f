"""
SECURITY METRICS
================
Prometheus counters for the login guard.
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

from Security.security_config import feature_enabled


LOGIN_ATTEMPTS = Counter(
    "backoffice_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)
LOCKOUTS_TRIGGERED = Counter(
    "backoffice_login_lockouts_total",
    "Lockout windows opened after repeated failures",
)
LOCKOUT_REJECTIONS = Counter(
    "backoffice_login_lockout_rejections_total",
    "Login attempts refused because the key was locked out",
)
ACTIVE_EXPIRY_TIMERS = Gauge(
    "backoffice_lockout_expiry_timers",
    "Scheduled lockout expiry wake-ups currently armed",
)


def _enabled() -> bool:
    return feature_enabled("prometheus", True)


def record_login_attempt(outcome: str) -> None:
    if _enabled():
        LOGIN_ATTEMPTS.labels(outcome=outcome).inc()


def record_lockout_triggered() -> None:
    if _enabled():
        LOCKOUTS_TRIGGERED.inc()


def record_lockout_rejection() -> None:
    if _enabled():
        LOCKOUT_REJECTIONS.inc()


def set_expiry_timers(count: int) -> None:
    if _enabled():
        ACTIVE_EXPIRY_TIMERS.set(count)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
