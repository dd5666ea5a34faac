import asyncio

import bcrypt
from fastapi import Depends, Request

from ella_rises.core.auth import Principal
from ella_rises.core.config import Settings, get_settings
from ella_rises.services.repository import UserCredentialRecord

SESSION_USER_KEY = "user"


class AuthorizationError(Exception):
    """Base class for guard rejections; carries the user-facing notice and redirect target."""

    redirect_to = "/"
    notice = "You are not allowed to do that."


class AuthenticationRequiredError(AuthorizationError):
    redirect_to = "/login"
    notice = "Please log in to access that page."


class PrivilegeRequiredError(AuthorizationError):
    redirect_to = "/dashboard"
    notice = "You must be an admin to do that."


def get_optional_principal(request: Request) -> Principal | None:
    principal = Principal.from_session(request.session.get(SESSION_USER_KEY))
    if principal is None and SESSION_USER_KEY in request.session:
        # Unreadable session record; drop it rather than trust any part of it.
        request.session.pop(SESSION_USER_KEY, None)
    return principal


def require_authenticated(principal: Principal | None = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise AuthenticationRequiredError()
    return principal


def require_privileged(principal: Principal = Depends(require_authenticated)) -> Principal:
    try:
        principal.require_scopes({"records:write"})
    except PermissionError as exc:
        raise PrivilegeRequiredError() from exc
    return principal


def establish_session(request: Request, principal: Principal) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = principal.to_session()


def hash_password(password: str, *, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


async def hash_password_async(password: str, settings: Settings | None = None) -> str:
    rounds = (settings or get_settings()).password_bcrypt_rounds
    return await asyncio.to_thread(hash_password, password, rounds=rounds)


async def authenticate(credentials: UserCredentialRecord | None, password: str) -> Principal | None:
    if credentials is None or not password:
        return None
    matched = await asyncio.to_thread(verify_password, password, credentials.password_hash)
    if not matched:
        return None
    return Principal.from_session(
        {"id": credentials.user_id, "username": credentials.username, "role": credentials.role}
    )
