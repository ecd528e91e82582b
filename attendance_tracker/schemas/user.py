from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


def normalize_email(value: str) -> str:
    return value.strip().lower()


def _password_fits_bcrypt(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class User(BaseModel):
    """Stored user, including the password hash. Never serialised to clients."""

    id: int
    email: str
    password_hash: str
    full_name: str
    created_at: datetime


class UserOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    email: str
    full_name: str
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(id=user.id, email=user.email, full_name=user.full_name, created_at=user.created_at)


class _Credentials(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="after")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return normalize_email(value)


class RegisterRequest(_Credentials):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"email": "alice@example.com", "password": "secret1", "fullName": "Alice Example"}
        },
    )

    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    full_name: str

    @field_validator("password")
    @classmethod
    def _password_fits(cls, value: str) -> str:
        return _password_fits_bcrypt(value)

    @field_validator("full_name")
    @classmethod
    def _full_name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Full name is required")
        return value


class LoginRequest(_Credentials):
    password: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def _password_fits(cls, value: str) -> str:
        return _password_fits_bcrypt(value)


class AuthResponse(BaseModel):
    user: UserOut
    token: str
