from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from Security.login_attempt_limiting import create_login_guard
from Security.security_config import SECURITY_SETTINGS

from .auth import ADMIN_ROLE
from .database import SessionLocal, get_db
from .models import User

login_guard = create_login_guard(SECURITY_SETTINGS, session_factory=SessionLocal)


def get_login_guard(request: Request):
    return getattr(request.app.state, "login_guard", login_guard)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    uid = request.session.get("uid")
    if not uid:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = db.query(User).filter(User.uid == uid).first()
    if not user or not user.is_active:
        request.session.clear()
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.user_role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Access denied")
    return user
