"""
SECRETS REDACTION
=================
Mask credentials and login identifiers before they reach the logs.
"""

# FLOW:
# - redact() masks secret query/form values.
# - mask_identifier()/mask_lockout_key() shorten emails to a***@domain.
# HOW:
# - Regex substitution; disabled entirely with SECRETS_REDACTION_ENABLED=false.

from __future__ import annotations

import re

from Security.security_config import feature_enabled


_SECRET_PATTERNS = [
    re.compile(r"(password=)([^&\s]+)", re.IGNORECASE),
    re.compile(r"(token=)([^&\s]+)", re.IGNORECASE),
    re.compile(r"(key=)([^&\s]+)", re.IGNORECASE),
    re.compile(r'("password"\s*:\s*")([^"]*)(")', re.IGNORECASE),
]

_EMAIL = re.compile(r"([^\s@:|]+)@([^\s@|]+\.[^\s@|]+)")


def redact(value: str) -> str:
    if not value or not feature_enabled("secrets-redaction", True):
        return value
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(lambda m: m.group(1) + "***" + (m.group(3) if m.lastindex == 3 else ""), value)
    return value


def _mask_local(match: re.Match) -> str:
    local, domain = match.group(1), match.group(2)
    return f"{local[:1]}***@{domain}"


def mask_identifier(identifier: str | None) -> str:
    if not identifier:
        return "-"
    if not feature_enabled("secrets-redaction", True):
        return identifier
    return _EMAIL.sub(_mask_local, identifier)


def mask_lockout_key(key: str) -> str:
    # loginLockout:alice@example.com|10.0.0.1 -> loginLockout:a***@example.com|10.0.0.1
    return mask_identifier(key)
