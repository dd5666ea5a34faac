import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.security import hash_password_async, require_authenticated, require_privileged
from ella_rises.schemas.users import UserCreateForm, UserOut, UserUpdateForm
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

LISTING = "/users"


@router.get("")
async def list_users(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_users(q=q)
    except RepositoryError:
        logger.exception("user listing failed")
        return render(request, "users/index.html", {"users": [], "q": q or "", "notice": "Error loading users."})
    return render(request, "users/index.html", {"users": [UserOut(**row) for row in rows], "q": q or ""})


@router.get("/new")
async def new_user(request: Request, principal=Depends(require_privileged)) -> Response:
    return render(
        request,
        "users/form.html",
        {"user": None, "form_title": "Create User", "form_action": LISTING},
    )


@router.post("")
async def create_user(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, UserCreateForm)
        password_hash = await hash_password_async(payload.password)
        await repository.create_user(
            username=payload.username,
            email=payload.email,
            role=payload.role,
            password_hash=password_hash,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error creating user: {exc}")
    return notice_redirect(request, LISTING, "User created.")


@router.get("/{user_id:int}")
async def show_user(
    request: Request,
    user_id: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_user(user_id=user_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(request, "users/show.html", {"user": UserOut(**row)})


@router.get("/{user_id:int}/edit")
async def edit_user(
    request: Request,
    user_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_user(user_id=user_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "users/form.html",
        {"user": UserOut(**row), "form_title": "Edit User", "form_action": f"{LISTING}/{user_id}"},
    )


@router.post("/{user_id:int}")
async def update_user(
    request: Request,
    user_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, UserUpdateForm)
        password_hash = await hash_password_async(payload.password) if payload.password else None
        await repository.update_user(
            user_id=user_id,
            username=payload.username,
            email=payload.email,
            role=payload.role,
            password_hash=password_hash,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error updating user: {exc}")
    return notice_redirect(request, LISTING, "User updated.")


@router.post("/{user_id:int}/delete")
async def delete_user(
    request: Request,
    user_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        await repository.delete_user(user_id=user_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error deleting user: {exc}")
    return notice_redirect(request, LISTING, "User deleted.")
