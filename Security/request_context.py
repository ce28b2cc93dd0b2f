"""
REQUEST CONTEXT
===============
Request id and audit context for every request.
"""

# FLOW:
# - Reuse or mint x-request-id, bind the audit context, echo the id back.
# HOW:
# - Audit context is reset once the downstream app returns.

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware

from Security.audit_trail import clear_audit_request_context, set_audit_request_context


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        request_id = (request.headers.get("x-request-id") or "").strip() or uuid.uuid4().hex
        request.state.request_id = request_id
        token = set_audit_request_context(request)
        try:
            response = await call_next(request)
        finally:
            clear_audit_request_context(token)
        response.headers["x-request-id"] = request_id
        return response
