import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.security import require_authenticated, require_privileged
from ella_rises.schemas.events import (
    EventInstanceForm,
    EventInstanceListItem,
    EventInstanceOut,
    EventTemplateForm,
    EventTemplateOption,
    EventTemplateOut,
)
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

INSTANCES = "/events/admin"
TEMPLATES = "/events/templates"


# Instances


@router.get("/admin")
async def list_event_instances(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_event_instances(q=q)
    except RepositoryError:
        logger.exception("event listing failed")
        return render(request, "events/index.html", {"events": [], "q": q or "", "notice": "Error loading events."})
    return render(
        request,
        "events/index.html",
        {"events": [EventInstanceListItem(**row) for row in rows], "q": q or ""},
    )


@router.get("/new")
async def new_event_instance(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        templates = [EventTemplateOption(**row) for row in await repository.list_event_template_options()]
    except RepositoryError as exc:
        return notice_redirect(request, INSTANCES, str(exc))
    if not templates:
        return notice_redirect(request, TEMPLATES, "Create an event template before scheduling an event.")
    return render(
        request,
        "events/form.html",
        {"event": None, "templates": templates, "form_title": "Schedule Event", "form_action": "/events"},
    )


@router.post("")
async def create_event_instance(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, EventInstanceForm)
        await repository.create_event_instance(**payload.model_dump())
    except RepositoryError as exc:
        return notice_redirect(request, INSTANCES, f"Error creating event: {exc}")
    return notice_redirect(request, INSTANCES, "Event created.")


@router.get("/{instance_id:int}")
async def show_event_instance(
    request: Request,
    instance_id: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_event_instance(instance_id=instance_id)
    except RepositoryError as exc:
        return notice_redirect(request, INSTANCES, str(exc))
    return render(request, "events/show.html", {"event": EventInstanceOut(**row)})


@router.get("/{instance_id:int}/edit")
async def edit_event_instance(
    request: Request,
    instance_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        event = EventInstanceOut(**await repository.get_event_instance(instance_id=instance_id))
        templates = [EventTemplateOption(**row) for row in await repository.list_event_template_options()]
    except RepositoryError as exc:
        return notice_redirect(request, INSTANCES, str(exc))
    return render(
        request,
        "events/form.html",
        {
            "event": event,
            "templates": templates,
            "form_title": "Edit Event",
            "form_action": f"/events/{instance_id}",
        },
    )


@router.post("/{instance_id:int}")
async def update_event_instance(
    request: Request,
    instance_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, EventInstanceForm)
        await repository.update_event_instance(instance_id=instance_id, **payload.model_dump())
    except RepositoryError as exc:
        return notice_redirect(request, INSTANCES, f"Error updating event: {exc}")
    return notice_redirect(request, INSTANCES, "Event updated.")


@router.post("/{instance_id:int}/delete")
async def delete_event_instance(
    request: Request,
    instance_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        template_deleted = await repository.delete_event_instance(instance_id=instance_id)
    except RepositoryError as exc:
        return notice_redirect(request, INSTANCES, str(exc))
    if template_deleted:
        return notice_redirect(
            request,
            INSTANCES,
            "Event deleted. The event template was also removed since it had no remaining instances.",
        )
    return notice_redirect(request, INSTANCES, "Event deleted.")


# Templates


@router.get("/templates")
async def list_event_templates(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_event_templates(q=q)
    except RepositoryError:
        logger.exception("event template listing failed")
        return render(
            request,
            "event_templates/index.html",
            {"templates": [], "q": q or "", "notice": "Error loading event templates."},
        )
    return render(
        request,
        "event_templates/index.html",
        {"templates": [EventTemplateOut(**row) for row in rows], "q": q or ""},
    )


@router.get("/templates/new")
async def new_event_template(request: Request, principal=Depends(require_privileged)) -> Response:
    return render(
        request,
        "event_templates/form.html",
        {"template": None, "form_title": "Create Event Template", "form_action": TEMPLATES},
    )


@router.post("/templates")
async def create_event_template(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, EventTemplateForm)
        await repository.create_event_template(**payload.model_dump())
    except RepositoryError as exc:
        return notice_redirect(request, TEMPLATES, f"Error creating event template: {exc}")
    return notice_redirect(request, TEMPLATES, "Event template created.")


@router.get("/templates/{event_id:int}")
async def show_event_template(
    request: Request,
    event_id: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_event_template(event_id=event_id)
    except RepositoryError as exc:
        return notice_redirect(request, TEMPLATES, str(exc))
    return render(request, "event_templates/show.html", {"template": EventTemplateOut(**row)})


@router.get("/templates/{event_id:int}/edit")
async def edit_event_template(
    request: Request,
    event_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_event_template(event_id=event_id)
    except RepositoryError as exc:
        return notice_redirect(request, TEMPLATES, str(exc))
    return render(
        request,
        "event_templates/form.html",
        {
            "template": EventTemplateOut(**row),
            "form_title": "Edit Event Template",
            "form_action": f"{TEMPLATES}/{event_id}",
        },
    )


@router.post("/templates/{event_id:int}")
async def update_event_template(
    request: Request,
    event_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, EventTemplateForm)
        await repository.update_event_template(event_id=event_id, **payload.model_dump())
    except RepositoryError as exc:
        return notice_redirect(request, TEMPLATES, f"Error updating event template: {exc}")
    return notice_redirect(request, TEMPLATES, "Event template updated.")


@router.post("/templates/{event_id:int}/delete")
async def delete_event_template(
    request: Request,
    event_id: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        await repository.delete_event_template(event_id=event_id)
    except RepositoryError as exc:
        return notice_redirect(request, TEMPLATES, str(exc))
    return notice_redirect(request, TEMPLATES, "Event template deleted.")
