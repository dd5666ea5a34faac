from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ella_rises.core.auth import Principal
from ella_rises.schemas.donations import ANONYMOUS_TOKEN, DonationForm, DonationOut
from ella_rises.schemas.events import EventInstanceForm, EventInstanceListItem, PublicEventOut
from ella_rises.schemas.participants import ParticipantForm
from ella_rises.schemas.surveys import SurveyForm
from ella_rises.schemas.users import UserCreateForm, UserUpdateForm
from ella_rises.services.repository import DonationKey, RepositoryValidationError


def test_participant_form_trims_blanks_and_normalizes_email() -> None:
    form = ParticipantForm.model_validate(
        {
            "first_name": " Ana ",
            "last_name": "Ruiz",
            "email": "  Ana.Ruiz@Example.COM ",
            "phone": "",
            "zip": "84604",
        }
    )
    assert form.first_name == "Ana"
    assert form.email == "ana.ruiz@example.com"
    assert form.phone is None
    assert form.zip_code == "84604"


def test_participant_form_requires_names() -> None:
    with pytest.raises(ValidationError):
        ParticipantForm.model_validate({"first_name": "", "last_name": "Ruiz"})


def test_user_role_is_normalized_to_standard_user() -> None:
    form = UserUpdateForm.model_validate({"username": "kim", "role": "manager"})
    assert form.role == "user"
    assert UserUpdateForm.model_validate({"username": "kim", "role": " ADMIN "}).role == "admin"


def test_user_create_requires_a_password_within_bcrypt_limit() -> None:
    with pytest.raises(ValidationError):
        UserCreateForm.model_validate({"username": "kim"})
    with pytest.raises(ValidationError):
        UserCreateForm.model_validate({"username": "kim", "password": "x" * 73})
    assert UserCreateForm.model_validate({"username": "kim", "password": "x" * 72}).password == "x" * 72


def test_survey_form_skips_unanswered_questions_and_never_uses_question_three() -> None:
    form = SurveyForm.model_validate(
        {"participant_id": "4", "event_instance_id": "", "satisfaction": "5", "usefulness": "", "recommend": "3"}
    )
    assert form.event_instance_id is None
    assert form.responses() == {1: 5, 4: 3}


def test_survey_form_rejects_out_of_range_answers() -> None:
    with pytest.raises(ValidationError):
        SurveyForm.model_validate({"participant_id": "4", "satisfaction": "6"})


def test_event_instance_form_treats_local_times_as_utc_and_checks_order() -> None:
    form = EventInstanceForm.model_validate({"event_id": "2", "start_time": "2025-04-05T10:00"})
    assert form.start_time == datetime(2025, 4, 5, 10, 0, tzinfo=timezone.utc)
    assert form.capacity is None

    with pytest.raises(ValidationError):
        EventInstanceForm.model_validate(
            {"event_id": "2", "start_time": "2025-04-05T10:00", "end_time": "2025-04-05T09:00"}
        )


def test_event_projections_fill_display_defaults() -> None:
    start = datetime(2025, 4, 5, 10, 0, tzinfo=timezone.utc)
    public = PublicEventOut.model_validate(
        {"name": None, "type": None, "location": None, "description": None, "start_time": start}
    )
    assert (public.name, public.type, public.location, public.description) == ("Event", "General", "TBD", "")

    listed = EventInstanceListItem.model_validate(
        {"id": 1, "event_id": 2, "name": None, "type": None, "location": None, "start_time": start}
    )
    assert listed.name == "Event"
    assert listed.location is None


def test_donation_form_reads_date_field_and_blank_donor_as_anonymous() -> None:
    form = DonationForm.model_validate({"participant_id": "", "amount": "12.5", "date": "2025-02-01"})
    assert form.participant_id is None
    assert form.amount == Decimal("12.5")
    assert form.donation_date.isoformat() == "2025-02-01"

    with pytest.raises(ValidationError):
        DonationForm.model_validate({"amount": "0"})


def test_donation_paths_use_null_token_for_anonymous_bucket() -> None:
    anonymous = DonationOut(
        participant_id=None,
        donation_number=3,
        donor="Anonymous",
        amount=Decimal("5"),
        donation_date="2025-01-01",
    )
    assert anonymous.path == "/donations/null/3"


def test_donation_paths_and_keys_share_the_anonymous_token() -> None:
    for participant_id in (None, 42):
        row = DonationOut(
            participant_id=participant_id,
            donation_number=7,
            donor="Someone",
            amount=Decimal("5"),
            donation_date="2025-01-01",
        )
        key = DonationKey(participant_id=participant_id, donation_number=7)
        assert row.participant_token == key.participant_token
        assert DonationKey.parse(row.participant_token, row.donation_number) == key
    assert DonationKey(participant_id=None, donation_number=1).participant_token == ANONYMOUS_TOKEN


def test_donation_key_parsing() -> None:
    assert DonationKey.parse("null", "2") == DonationKey(participant_id=None, donation_number=2)
    assert DonationKey.parse("NULL", 1).scope == 0
    key = DonationKey.parse("17", 4)
    assert key.participant_id == 17
    assert key.participant_token == "17"

    for bad in (("abc", 1), ("0", 1), ("5", 0), ("-2", 1)):
        with pytest.raises(RepositoryValidationError):
            DonationKey.parse(*bad)


def test_principal_from_session_rejects_malformed_payloads() -> None:
    assert Principal.from_session(None) is None
    assert Principal.from_session({"id": "1", "username": "x"}) is None
    assert Principal.from_session({"id": True, "username": "x"}) is None

    principal = Principal.from_session({"id": 3, "username": "kim", "role": "superuser"})
    assert principal is not None
    assert principal.role == "user"
    assert principal.is_privileged is False
    with pytest.raises(PermissionError):
        principal.require_scopes({"records:write"})
