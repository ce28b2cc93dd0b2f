from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session
import time

from Security.audit_trail import audit
from Security.error_handling import LoginLockedOut, LoginRejected
from Security.login_attempt_limiting import lockout_client_ip
from Security.metrics import record_login_attempt, record_lockout_rejection

from .app_context import get_current_user, get_login_guard, require_admin
from .auth import authenticate_user
from .database import get_db
from .models import User
from .schemas import LoginRequest

DASHBOARD_PATH = "/dashboard"


def register_web_auth_routes(app):
    @app.post("/api/auth/login")
    def login_submit(
        payload: LoginRequest,
        request: Request,
        db: Session = Depends(get_db),
        guard=Depends(get_login_guard),
    ):
        key = guard.lockout_key(payload.email, lockout_client_ip(request))

        status = guard.status(key)
        if status.locked:
            record_lockout_rejection()
            record_login_attempt("locked")
            audit("auth_login_locked", identity=payload.email, details=f"remaining={status.remaining_seconds}")
            raise LoginLockedOut(status)

        outcome = authenticate_user(db, payload.email, payload.password)
        if not outcome.ok:
            status = guard.record_failure(key)
            record_login_attempt("failure")
            audit(
                "auth_login_failed",
                identity=payload.email,
                details=f"reason={outcome.reason};attempts={status.failed_attempts}/{status.max_attempts}",
            )
            raise LoginRejected(outcome.reason, outcome.message, status)

        user = outcome.user
        guard.record_success(key)
        record_login_attempt("success")

        now_ts = int(time.time())
        request.session["uid"] = user.uid
        request.session["role"] = user.user_role
        request.session["_created"] = now_ts
        request.session["_last_seen"] = now_ts
        audit("auth_login_success", identity=user.email, details=f"uid={user.uid};role={user.user_role}")
        return {"ok": True, "redirect": DASHBOARD_PATH, "user": user.to_dict()}

    @app.get("/api/auth/lockout")
    def lockout_status(
        request: Request,
        email: str = Query(..., min_length=1),
        guard=Depends(get_login_guard),
    ):
        key = guard.lockout_key(email, lockout_client_ip(request))
        return guard.status(key).to_dict()

    @app.post("/api/auth/logout")
    def logout(request: Request):
        uid = request.session.get("uid")
        if uid:
            audit("auth_logout", details=f"uid={uid}")
        request.session.clear()
        return {"ok": True, "redirect": "/login"}

    @app.get(DASHBOARD_PATH)
    def dashboard(user: User = Depends(require_admin)):
        return {"user": user.to_dict()}

    @app.get("/api/auth/me")
    def me(user: User = Depends(get_current_user)):
        return user.to_dict()
