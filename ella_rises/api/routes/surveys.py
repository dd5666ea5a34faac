import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.security import require_authenticated, require_privileged
from ella_rises.schemas.events import EventInstanceOption
from ella_rises.schemas.participants import ParticipantOption
from ella_rises.schemas.surveys import SurveyForm, SurveyListItem, SurveyOut
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

LISTING = "/surveys"


async def _form_options(repository) -> dict[str, list]:
    participants, events = await asyncio.gather(
        repository.list_participant_options(),
        repository.list_event_instance_options(),
    )
    return {
        "participants": [ParticipantOption(**row) for row in participants],
        "events": [EventInstanceOption(**row) for row in events],
    }


@router.get("")
async def list_surveys(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_surveys(q=q)
    except RepositoryError:
        logger.exception("survey listing failed")
        return render(request, "surveys/index.html", {"surveys": [], "q": q or "", "notice": "Error loading surveys."})
    return render(request, "surveys/index.html", {"surveys": [SurveyListItem(**row) for row in rows], "q": q or ""})


@router.get("/new")
async def new_survey(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        options = await _form_options(repository)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "surveys/form.html",
        {"survey": None, "form_title": "Add Survey", "form_action": LISTING, **options},
    )


@router.post("")
async def create_survey(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, SurveyForm)
        await repository.create_survey(
            participant_id=payload.participant_id,
            event_instance_id=payload.event_instance_id,
            responses=payload.responses(),
            comment=payload.comment,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error creating survey: {exc}")
    return notice_redirect(request, LISTING, "Survey created.")


@router.get("/{survey_id:int}")
async def show_survey(
    request: Request,
    survey_id: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_survey(survey_id=survey_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(request, "surveys/show.html", {"survey": SurveyOut(**row)})


@router.get("/{survey_id:int}/edit")
async def edit_survey(
    request: Request,
    survey_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        survey = SurveyOut(**await repository.get_survey(survey_id=survey_id))
        options = await _form_options(repository)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "surveys/form.html",
        {"survey": survey, "form_title": "Edit Survey", "form_action": f"{LISTING}/{survey_id}", **options},
    )


@router.post("/{survey_id:int}")
async def update_survey(
    request: Request,
    survey_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, SurveyForm)
        await repository.update_survey(
            survey_id=survey_id,
            participant_id=payload.participant_id,
            event_instance_id=payload.event_instance_id,
            responses=payload.responses(),
            comment=payload.comment,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error updating survey: {exc}")
    return notice_redirect(request, LISTING, "Survey updated.")


@router.post("/{survey_id:int}/delete")
async def delete_survey(
    request: Request,
    survey_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        await repository.delete_survey(survey_id=survey_id)
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return notice_redirect(request, LISTING, "Survey deleted.")
