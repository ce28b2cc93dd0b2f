from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from .database import Base
import datetime
import uuid


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


# --- STAFF ACCOUNTS ---


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(64), unique=True, nullable=False, default=lambda: uuid.uuid4().hex)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(150), nullable=True)
    organization_name = Column(String(150), nullable=True)
    password_hash = Column(String(200), nullable=False)

    # Roles: 'admin', 'owner', 'renter'. Only admins may sign in to the back-office.
    user_role = Column(String(50), nullable=False, default="renter")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "uid": self.uid,
            "email": self.email,
            "fullName": self.full_name,
            "organizationName": self.organization_name,
            "userRole": self.user_role,
        }


# --- LOGIN LOCKOUT RECORDS ---


class LoginLockout(Base):
    """One key-value record per lockout key; value holds the JSON lockout state."""

    __tablename__ = "login_lockouts"

    key = Column(String(320), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
