import logging
from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, parse_form, render
from ella_rises.core.security import require_authenticated, require_privileged
from ella_rises.schemas.donations import DonationForm, DonationOut
from ella_rises.schemas.participants import ParticipantOption
from ella_rises.services.repository import DonationKey, RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)

LISTING = "/donations"


def _prefill_amount(raw: str | None) -> Decimal | None:
    if not raw:
        return None
    try:
        amount = Decimal(raw.strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() and amount > 0 else None


@router.get("")
async def list_donations(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
    q: str | None = Query(default=None),
) -> Response:
    try:
        rows = await repository.list_donations(q=q)
    except RepositoryError:
        logger.exception("donation listing failed")
        return render(
            request,
            "donations/index.html",
            {"donations": [], "q": q or "", "notice": "Error loading donations."},
        )
    return render(request, "donations/index.html", {"donations": [DonationOut(**row) for row in rows], "q": q or ""})


@router.get("/new")
async def new_donation(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
    amount: str | None = Query(default=None),
) -> Response:
    try:
        participants = [ParticipantOption(**row) for row in await repository.list_participant_options()]
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "donations/form.html",
        {
            "donation": None,
            "participants": participants,
            "prefill_amount": _prefill_amount(amount),
            "form_title": "Record Donation",
            "form_action": LISTING,
        },
    )


@router.post("")
async def create_donation(
    request: Request,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        payload = await parse_form(request, DonationForm)
        await repository.create_donation(
            participant_id=payload.participant_id,
            amount=payload.amount,
            donation_date=payload.donation_date,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error creating donation: {exc}")
    return notice_redirect(request, LISTING, "Donation recorded.")


@router.get("/{participant}/{donation_number:int}")
async def show_donation(
    request: Request,
    participant: str,
    donation_number: int,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        row = await repository.get_donation(key=DonationKey.parse(participant, donation_number))
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(request, "donations/show.html", {"donation": DonationOut(**row)})


@router.get("/{participant}/{donation_number:int}/edit")
async def edit_donation(
    request: Request,
    participant: str,
    donation_number: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        donation = DonationOut(**await repository.get_donation(key=DonationKey.parse(participant, donation_number)))
        participants = [ParticipantOption(**row) for row in await repository.list_participant_options()]
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return render(
        request,
        "donations/form.html",
        {
            "donation": donation,
            "participants": participants,
            "prefill_amount": None,
            "form_title": "Edit Donation",
            "form_action": donation.path,
        },
    )


@router.post("/{participant}/{donation_number:int}")
async def update_donation(
    request: Request,
    participant: str,
    donation_number: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        key = DonationKey.parse(participant, donation_number)
        payload = await parse_form(request, DonationForm)
        new_key = await repository.update_donation(
            key=key,
            participant_id=payload.participant_id,
            amount=payload.amount,
            donation_date=payload.donation_date,
        )
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, f"Error updating donation: {exc}")
    if new_key != key:
        return notice_redirect(request, LISTING, f"Donation moved and renumbered as #{new_key.donation_number}.")
    return notice_redirect(request, LISTING, "Donation updated.")


@router.post("/{participant}/{donation_number:int}/delete")
async def delete_donation(
    request: Request,
    participant: str,
    donation_number: int,
    principal=Depends(require_privileged),
    repository=Depends(get_repository),
) -> Response:
    try:
        await repository.delete_donation(key=DonationKey.parse(participant, donation_number))
    except RepositoryError as exc:
        return notice_redirect(request, LISTING, str(exc))
    return notice_redirect(request, LISTING, "Donation deleted.")
