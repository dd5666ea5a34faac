import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.security import require_authenticated, require_privileged
from ella_rises.schemas.milestones import MilestoneOut
from ella_rises.schemas.participants import (
    MilestoneAssignForm,
    ParticipantForm,
    ParticipantListItem,
    ParticipantOut,
    format_participant_name,
)
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

LISTING = "/participants"


@router.get("")
async def list_participants(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_participants(q=q)
    except RepositoryError:
        logger.exception("participant listing failed")
        return render(
            request,
            "participants/index.html",
            {"participants": [], "q": q or "", "notice": "Error loading participants."},
        )
    participants = [
        ParticipantListItem(name=format_participant_name(row["first_name"], row["last_name"]), **row)
        for row in rows
    ]
    return render(request, "participants/index.html", {"participants": participants, "q": q or ""})


@router.get("/new")
async def new_participant(request: Request, principal=Depends(require_privileged)) -> Response:
    return render(
        request,
        "participants/form.html",
        {"participant": None, "form_title": "Add Participant", "form_action": LISTING},
    )


@router.post("")
async def create_participant(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, ParticipantForm)
        await repository.create_participant(**payload.model_dump())
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error creating participant: {exc}")
    return notice_redirect(request, LISTING, "Participant created.")


@router.get("/{participant_id:int}")
async def show_participant(
    request: Request,
    participant_id: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_participant(participant_id=participant_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(request, "participants/show.html", {"participant": ParticipantOut(**row)})


@router.get("/{participant_id:int}/edit")
async def edit_participant(
    request: Request,
    participant_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_participant(participant_id=participant_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "participants/form.html",
        {
            "participant": ParticipantOut(**row),
            "form_title": "Edit Participant",
            "form_action": f"{LISTING}/{participant_id}",
        },
    )


@router.post("/{participant_id:int}")
async def update_participant(
    request: Request,
    participant_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, ParticipantForm)
        await repository.update_participant(participant_id=participant_id, **payload.model_dump())
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error updating participant: {exc}")
    return notice_redirect(request, LISTING, "Participant updated.")


@router.post("/{participant_id:int}/delete")
async def delete_participant(
    request: Request,
    participant_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        surveys_removed = await repository.delete_participant(participant_id=participant_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    if surveys_removed:
        return notice_redirect(
            request,
            LISTING,
            f"Participant deleted along with {surveys_removed} survey submission(s).",
        )
    return notice_redirect(request, LISTING, "Participant deleted.")


@router.get("/{participant_id:int}/milestones/assign")
async def assign_milestone_page(
    request: Request,
    participant_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        participant = ParticipantOut(**await repository.get_participant(participant_id=participant_id))
        milestones = [MilestoneOut(**row) for row in await repository.list_milestones()]
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    assigned = {milestone.milestone_id for milestone in participant.milestones}
    return render(
        request,
        "participants/assign_milestone.html",
        {
            "participant": participant,
            "milestones": [milestone for milestone in milestones if milestone.id not in assigned],
        },
    )


@router.post("/{participant_id:int}/milestones")
async def assign_milestone(
    request: Request,
    participant_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    detail = f"{LISTING}/{participant_id}"
    try:
        payload = await parse_form(request, MilestoneAssignForm)
        await repository.assign_milestone(
            participant_id=participant_id,
            milestone_id=payload.milestone_id,
            achieved_date=payload.achieved_date,
        )
    except RepositoryError as exc:
        return notice_redirect(request, detail, f"Error assigning milestone: {exc}")
    return notice_redirect(request, detail, "Milestone assigned.")


@router.post("/{participant_id:int}/milestones/{milestone_id:int}/delete")
async def unassign_milestone(
    request: Request,
    participant_id: int,
    milestone_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    detail = f"{LISTING}/{participant_id}"
    try:
        await repository.unassign_milestone(participant_id=participant_id, milestone_id=milestone_id)
    except RepositoryError as exc:
        return notice_redirect(request, detail, str(exc))
    return notice_redirect(request, detail, "Milestone removed.")
