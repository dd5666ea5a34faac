import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, render
from ella_rises.core.security import authenticate, establish_session, get_optional_principal
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password."


@router.get("/login")
async def login_page(request: Request, principal=Depends(get_optional_principal)) -> Response:
    if principal is not None:
        return notice_redirect(request, "/dashboard")
    return render(request, "auth/login.html")


@router.post("/login")
async def login(request: Request, repository=Depends(get_repository)) -> Response:
    form = await request.form()
    username = str(form.get("username") or "").strip()
    password = str(form.get("password") or "")
    if not username or not password:
        return notice_redirect(request, "/login", "Please provide both username and password.")

    try:
        credentials = await repository.get_user_credentials(username=username)
    except RepositoryError:
        logger.exception("login lookup failed")
        return notice_redirect(request, "/login", "An error occurred during login.")

    principal = await authenticate(credentials, password)
    if principal is None:
        logger.info("login rejected username=%s", username)
        return notice_redirect(request, "/login", INVALID_CREDENTIALS)

    establish_session(request, principal)
    logger.info("login accepted user_id=%s role=%s", principal.user_id, principal.role)
    return notice_redirect(request, "/dashboard", f"Welcome, {principal.username}!")


@router.post("/logout")
async def logout(request: Request) -> Response:
    request.session.clear()
    return notice_redirect(request, "/")
