import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.security import require_authenticated, require_privileged
from ella_rises.schemas.milestones import MilestoneDetailOut, MilestoneForm, MilestoneOut
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

LISTING = "/milestones"


@router.get("")
async def list_milestones(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_milestones(q=q)
    except RepositoryError:
        logger.exception("milestone listing failed")
        return render(
            request,
            "milestones/index.html",
            {"milestones": [], "q": q or "", "notice": "Error loading milestones."},
        )
    return render(request, "milestones/index.html", {"milestones": [MilestoneOut(**row) for row in rows], "q": q or ""})


@router.get("/new")
async def new_milestone(request: Request, principal=Depends(require_privileged)) -> Response:
    return render(
        request,
        "milestones/form.html",
        {"milestone": None, "form_title": "Add Milestone", "form_action": LISTING},
    )


@router.post("")
async def create_milestone(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, MilestoneForm)
        await repository.create_milestone(title=payload.title, description=payload.description)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error creating milestone: {exc}")
    return notice_redirect(request, LISTING, "Milestone created.")


@router.get("/{milestone_id:int}")
async def show_milestone(
    request: Request,
    milestone_id: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_milestone(milestone_id=milestone_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(request, "milestones/show.html", {"milestone": MilestoneDetailOut(**row)})


@router.get("/{milestone_id:int}/edit")
async def edit_milestone(
    request: Request,
    milestone_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_milestone(milestone_id=milestone_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "milestones/form.html",
        {
            "milestone": MilestoneOut(**row),
            "form_title": "Edit Milestone",
            "form_action": f"{LISTING}/{milestone_id}",
        },
    )


@router.post("/{milestone_id:int}")
async def update_milestone(
    request: Request,
    milestone_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, MilestoneForm)
        await repository.update_milestone(
            milestone_id=milestone_id,
            title=payload.title,
            description=payload.description,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error updating milestone: {exc}")
    return notice_redirect(request, LISTING, "Milestone updated.")


@router.post("/{milestone_id:int}/delete")
async def delete_milestone(
    request: Request,
    milestone_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        removed = await repository.delete_milestone(milestone_id=milestone_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error deleting milestone: {exc}")
    if removed:
        return notice_redirect(request, LISTING, f"Milestone deleted along with {removed} participant assignment(s).")
    return notice_redirect(request, LISTING, "Milestone deleted.")
