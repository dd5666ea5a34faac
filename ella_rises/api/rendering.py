from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, TypeVar

from fastapi import Request
from fastapi.responses import RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ValidationError

from ella_rises.core.security import get_optional_principal
from ella_rises.services.repository import RepositoryValidationError

FLASH_KEY = "flash"
TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

FormT = TypeVar("FormT", bound=BaseModel)


def _format_datetime(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%b %d, %Y %I:%M %p")


def _format_date(value: date | datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%b %d, %Y")


def _format_input_datetime(value: datetime | None) -> str:
    # Value for <input type="datetime-local">.
    if value is None:
        return ""
    return value.strftime("%Y-%m-%dT%H:%M")


def _format_money(value: Decimal | float | int | None) -> str:
    if value is None:
        return "$0.00"
    return f"${Decimal(str(value)):,.2f}"


templates.env.filters["datetime"] = _format_datetime
templates.env.filters["date"] = _format_date
templates.env.filters["input_datetime"] = _format_input_datetime
templates.env.filters["money"] = _format_money


def flash(request: Request, message: str) -> None:
    request.session[FLASH_KEY] = message


def pop_flash(request: Request) -> str | None:
    return request.session.pop(FLASH_KEY, None)


def notice_redirect(request: Request, url: str, message: str | None = None) -> RedirectResponse:
    if message:
        flash(request, message)
    return RedirectResponse(url, status_code=303)


def render(request: Request, name: str, context: dict[str, Any] | None = None, *, status_code: int = 200) -> Response:
    context = dict(context or {})
    flashed = pop_flash(request)
    supplied = context.pop("notice", None)
    # A page-level notice joins a pending flash instead of replacing it.
    notices = [message for message in (flashed, supplied) if message]
    payload = {
        "current_user": get_optional_principal(request),
        "notice": " ".join(dict.fromkeys(notices)) or None,
    }
    payload.update(context)
    return templates.TemplateResponse(request, name, payload, status_code=status_code)


async def parse_form(request: Request, model: type[FormT]) -> FormT:
    form = await request.form()
    try:
        return model.model_validate(dict(form))
    except ValidationError as exc:
        raise RepositoryValidationError(describe_validation_error(exc)) from exc


def describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else None
    if first is None:
        return "Please check the form and try again."
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    message = str(first.get("msg", "invalid value"))
    if location:
        return f"Please check the form: {location.replace('_', ' ')} {message.lower()}."
    return f"Please check the form: {message.lower()}."
