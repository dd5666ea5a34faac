import logging

import asyncpg  # type: ignore[import-untyped]
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.config import get_settings
from ella_rises.schemas.participants import PublicDonationForm
from ella_rises.schemas.reports import HomePage, ImpactStats
from ella_rises.services.reporting import load_home_page, load_impact_stats, load_upcoming_events
from ella_rises.services.repository import RepositoryError, RepositoryValidationError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

# Public pages render with empty figures rather than fail when the database is unreachable.
_DEGRADED_ERRORS = (RepositoryError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


@router.get("/")
async def home(request: Request, repository=Depends(get_repository)) -> Response:
    settings = get_settings()
    try:
        page = await load_home_page(repository, events_limit=settings.upcoming_events_limit)
    except _DEGRADED_ERRORS:
        logger.exception("home page aggregates unavailable")
        page = HomePage()
    return render(request, "public/home.html", {"page": page})


@router.get("/programs")
async def programs(request: Request) -> Response:
    return render(request, "public/programs.html")


@router.get("/events")
async def public_events(request: Request, repository=Depends(get_repository)) -> Response:
    try:
        events = await load_upcoming_events(repository, limit=None)
    except _DEGRADED_ERRORS:
        logger.exception("public events unavailable")
        events = []
    return render(request, "public/events.html", {"events": events})


@router.get("/donate")
async def donate(request: Request) -> Response:
    return render(request, "public/donate.html")


@router.get("/impact")
async def impact(request: Request, repository=Depends(get_repository)) -> Response:
    try:
        stats = await load_impact_stats(repository)
    except _DEGRADED_ERRORS:
        logger.exception("impact aggregates unavailable")
        stats = ImpactStats()
    return render(request, "public/impact.html", {"impact": stats})


@router.post("/donations/public")
async def public_donation(request: Request, repository=Depends(get_repository)) -> Response:
    try:
        payload = await parse_form(request, PublicDonationForm)
    except RepositoryValidationError:
        form = await request.form()
        return notice_redirect(request, "/donate", _public_donation_problem(form))

    try:
        participant_id = None
        if payload.donor_email:
            donor = await repository.find_or_create_participant(
                first_name=payload.donor_first_name,
                last_name=payload.donor_last_name,
                email=payload.donor_email,
            )
            participant_id = donor["participant_id"]
        await repository.create_donation(participant_id=participant_id, amount=payload.amount)
    except RepositoryError:
        logger.exception("public donation failed")
        return notice_redirect(request, "/donate", "Error recording donation. Please try again.")

    return notice_redirect(request, "/donate", "Thank you for your support!")


def _public_donation_problem(form) -> str:
    amount = str(form.get("amount") or "").strip()
    try:
        valid_amount = float(amount) > 0
    except ValueError:
        valid_amount = False
    if not valid_amount:
        return "Please enter a valid donation amount."
    if not str(form.get("donor_first_name") or "").strip():
        return "Please enter your first name."
    if not str(form.get("donor_last_name") or "").strip():
        return "Please enter your last name."
    return "Please check the donation form and try again."
