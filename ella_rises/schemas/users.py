from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ella_rises.core.auth import normalize_role
from ella_rises.schemas.forms import FormModel

UserRoleValue = Literal["admin", "user"]

# bcrypt only looks at the first 72 bytes of a secret.
MAX_PASSWORD_BYTES = 72


class UserOut(BaseModel):
    id: int
    username: str
    email: str | None = None
    role: UserRoleValue


class UserUpdateForm(FormModel):
    username: str = Field(min_length=1, max_length=150)
    email: str | None = Field(default=None, max_length=254)
    role: UserRoleValue = "user"
    password: str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: object) -> str:
        return normalize_role(value)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value

    @field_validator("password")
    @classmethod
    def _check_password_length(cls, value: str | None) -> str | None:
        if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class UserCreateForm(UserUpdateForm):
    password: str
