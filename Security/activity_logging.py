"""
ACTIVITY TRACKING
=================
One structured log line per request for the back-office.

FLOW:
- Added to the middleware stack in backoffice.main.
- Logs method, path, status, duration and the signed-in admin.

HOW:
- Writes to LOG_DIR/activity.log; query strings pass through redact().
"""

from __future__ import annotations

import logging
import os
import time
from logging.handlers import RotatingFileHandler

from starlette.middleware.base import BaseHTTPMiddleware

from Security.audit_trail import client_ip
from Security.secrets_redaction import redact
from Security.security_config import SECURITY_SETTINGS


def _get_logger() -> logging.Logger:
    logger = logging.getLogger("security.activity")
    if logger.handlers:
        return logger

    log_dir = SECURITY_SETTINGS["LOG_DIR"]
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(os.path.join(log_dir, "activity.log"), maxBytes=2_000_000, backupCount=3)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))

    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    return logger


class ActivityLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        self.logger = _get_logger()

    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        session = request.scope.get("session") or {}
        self.logger.info(
            "method=%s path=%s query=%s status=%s uid=%s request_id=%s ip=%s duration_ms=%.1f",
            request.method,
            request.url.path,
            redact(request.url.query) or "",
            response.status_code,
            session.get("uid") or "-",
            getattr(request.state, "request_id", "") or "",
            client_ip(request),
            elapsed_ms,
        )
        return response
