"""
AUDIT TRAIL
===========
Structured audit events for sign-in and lockout activity.
"""

# FLOW:
# - Middleware binds the request context (ip, request id, path).
# - audit() writes one line per sign-in or lockout event.
# HOW:
# - Rotating file under LOG_DIR; identifiers are masked before writing.

from __future__ import annotations

import contextvars
import logging
import os
from logging.handlers import RotatingFileHandler

from Security.secrets_redaction import mask_identifier, redact
from Security.security_config import SECURITY_SETTINGS, feature_enabled


logger = logging.getLogger("security.audit")
if not logger.handlers:
    log_dir = SECURITY_SETTINGS["LOG_DIR"]
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(os.path.join(log_dir, "audit.log"), maxBytes=2_000_000, backupCount=3)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)

_audit_ctx: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar("audit_ctx", default=None)


def client_ip(request) -> str:
    xff = (request.headers.get("x-forwarded-for") or "").strip()
    if xff:
        return xff.split(",")[0].strip()
    xrip = (request.headers.get("x-real-ip") or "").strip()
    if xrip:
        return xrip
    if request.client and request.client.host:
        return request.client.host
    return "-"


def set_audit_request_context(request):
    request_id = getattr(request.state, "request_id", "") or request.headers.get("x-request-id", "")
    payload = {
        "ip": client_ip(request),
        "request_id": str(request_id or "").strip(),
        "path": str(request.url.path or "").strip(),
        "method": str(request.method or "").strip(),
    }
    return _audit_ctx.set(payload)


def clear_audit_request_context(token) -> None:
    _audit_ctx.reset(token)


def audit(event: str, identity: str | None = None, details: str | None = None) -> None:
    if not feature_enabled("audit-trail", True):
        return
    ctx = _audit_ctx.get() or {}
    logger.info(
        "event=%s identity=%s ip=%s request_id=%s method=%s path=%s details=%s",
        event,
        mask_identifier(identity),
        ctx.get("ip", "-"),
        ctx.get("request_id", ""),
        ctx.get("method", ""),
        ctx.get("path", ""),
        mask_identifier(redact(details)) if details else "",
    )
