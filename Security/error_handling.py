"""
ERROR HANDLING SECURITY
=======================
Map login outcomes and failures to JSON responses without leaking internals.
"""

# FLOW:
# - Login route raises LoginLockedOut / LoginRejected.
# - register_error_handlers() turns them into 429 / 401 bodies.
# HOW:
# - 5xx details are replaced with a generic message; the traceback goes to
#   the "security.errors" logger only.

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("security.errors")

LOCKED_OUT_MESSAGE = "Too many failed attempts. Please wait {countdown} before trying again."


class LoginLockedOut(Exception):
    """The lockout key is inside an active lockout window."""

    def __init__(self, status) -> None:
        super().__init__("login locked out")
        self.status = status


class LoginRejected(Exception):
    """Authentication failed; carries the reason code and updated lockout status."""

    def __init__(self, code: str, message: str, status, http_status: int = 401) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.http_status = http_status


def locked_out_response(status) -> JSONResponse:
    return JSONResponse(
        {
            "detail": LOCKED_OUT_MESSAGE.format(countdown=status.countdown),
            "code": "locked-out",
            "lockout": status.to_dict(),
        },
        status_code=429,
        headers={"Retry-After": str(max(1, status.remaining_seconds))},
    )


def register_error_handlers(app):
    @app.exception_handler(LoginLockedOut)
    async def locked_out_handler(request: Request, exc: LoginLockedOut):
        return locked_out_response(exc.status)

    @app.exception_handler(LoginRejected)
    async def rejected_handler(request: Request, exc: LoginRejected):
        headers = None
        if exc.status.locked:
            headers = {"Retry-After": str(max(1, exc.status.remaining_seconds))}
        return JSONResponse(
            {"detail": exc.message, "code": exc.code, "lockout": exc.status.to_dict()},
            status_code=exc.http_status,
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            return JSONResponse({"detail": "An error occurred"}, status_code=exc.status_code)
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"detail": "An error occurred"}, status_code=500)
