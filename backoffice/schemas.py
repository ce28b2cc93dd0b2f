from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .auth import MIN_PASSWORD_LENGTH, is_valid_email, normalize_email


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        value = normalize_email(value)
        if not is_valid_email(value):
            raise ValueError("Please enter a valid email address.")
        return value


class LockoutResetRequest(BaseModel):
    """Either the exact lockout ``key`` or the email/client ip it was derived from."""

    key: Optional[str] = None
    email: Optional[str] = None
    client_ip: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _lower(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value is not None else None

    @model_validator(mode="after")
    def _has_target(self):
        if not self.key and not self.email and not self.client_ip:
            raise ValueError("key, email or client_ip is required")
        return self
