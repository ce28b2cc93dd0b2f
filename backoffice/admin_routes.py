from fastapi import Depends

from .app_context import get_login_guard, require_admin
from .models import User
from .schemas import LockoutResetRequest


def register_admin_routes(app):
    @app.get("/api/admin/lockouts")
    def list_lockouts(admin: User = Depends(require_admin), guard=Depends(get_login_guard)):
        return {
            "lockouts": [
                {"key": key, **status.to_dict()}
                for key, status in guard.active_lockouts()
            ]
        }

    @app.post("/api/admin/lockouts/reset")
    def reset_lockout(
        payload: LockoutResetRequest,
        admin: User = Depends(require_admin),
        guard=Depends(get_login_guard),
    ):
        key = payload.key or guard.lockout_key(payload.email, payload.client_ip)
        status = guard.reset(key, actor=admin.email)
        return {"key": key, **status.to_dict()}
