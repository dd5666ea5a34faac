from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


PRIVILEGED_ROLE = UserRole.ADMIN.value

ROLE_SCOPES: dict[str, set[str]] = {
    UserRole.USER.value: {"records:read"},
    UserRole.ADMIN.value: {"records:read", "records:write"},
}


def normalize_role(value: Any) -> str:
    """Anything other than the literal admin role is a standard user."""
    if isinstance(value, str) and value.strip().lower() == PRIVILEGED_ROLE:
        return PRIVILEGED_ROLE
    return UserRole.USER.value


@dataclass(slots=True, frozen=True)
class Principal:
    user_id: int
    username: str
    role: str
    scopes: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_session(cls, payload: Any) -> "Principal | None":
        if not isinstance(payload, dict):
            return None
        user_id = payload.get("id")
        username = payload.get("username")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or not isinstance(username, str) or not username:
            return None
        role = normalize_role(payload.get("role"))
        return cls(user_id=user_id, username=username, role=role, scopes=frozenset(ROLE_SCOPES[role]))

    def to_session(self) -> dict[str, Any]:
        return {"id": self.user_id, "username": self.username, "role": self.role}

    @property
    def is_privileged(self) -> bool:
        return self.role == PRIVILEGED_ROLE

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
