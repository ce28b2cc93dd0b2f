import re
from dataclasses import dataclass
from typing import Optional

import bcrypt
from sqlalchemy.orm import Session

from .models import User

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
ADMIN_ROLE = "admin"

AUTH_ERROR_MESSAGES = {
    "invalid-credential": "The email or password you entered is incorrect. Please check your credentials and try again.",
    "wrong-password": "Incorrect password. Please try again.",
    "user-not-found": "No account found with this email address.",
    "invalid-email": "Please enter a valid email address.",
    "user-disabled": "This account has been disabled. Please contact support.",
    "not-admin": "Access denied: Admins only.",
}
DEFAULT_AUTH_ERROR = "An unexpected error occurred. Please try again."


@dataclass
class AuthOutcome:
    user: Optional[User] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.user is not None

    @property
    def message(self) -> str:
        return AUTH_ERROR_MESSAGES.get(self.reason or "", DEFAULT_AUTH_ERROR)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def authenticate_user(db: Session, email: str, password: str) -> AuthOutcome:
    email = normalize_email(email)
    if not is_valid_email(email):
        return AuthOutcome(reason="invalid-email")
    user = get_user_by_email(db, email)
    if user is None:
        return AuthOutcome(reason="user-not-found")
    if not verify_password(password, user.password_hash):
        return AuthOutcome(reason="wrong-password")
    if not user.is_active:
        return AuthOutcome(reason="user-disabled")
    if user.user_role != ADMIN_ROLE:
        return AuthOutcome(reason="not-admin")
    return AuthOutcome(user=user)


def create_user(db: Session, email: str, password: str, role: str = ADMIN_ROLE, full_name: str | None = None) -> User:
    user = User(
        email=normalize_email(email),
        password_hash=hash_password(password),
        user_role=role,
        full_name=full_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
