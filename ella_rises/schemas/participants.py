from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ella_rises.schemas.forms import FormModel

ParticipantRole = Literal["participant", "donor"]


def format_participant_name(first_name: str | None, last_name: str | None) -> str:
    return f"{first_name or ''} {last_name or ''}".strip()


class ParticipantListItem(BaseModel):
    id: int
    name: str
    email: str | None = None
    city: str | None = None
    role: ParticipantRole = "participant"
    events_count: int = 0
    donations_count: int = 0


class ParticipantMilestoneOut(BaseModel):
    milestone_id: int
    title: str
    achieved_date: date


class ParticipantOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    school: str | None = None
    field_of_interest: str | None = None
    role: ParticipantRole = "participant"
    donations_count: int = 0
    milestones: list[ParticipantMilestoneOut] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return format_participant_name(self.first_name, self.last_name)


class ParticipantOption(BaseModel):
    id: int
    first_name: str
    last_name: str

    @property
    def name(self) -> str:
        return format_participant_name(self.first_name, self.last_name)


class ParticipantForm(FormModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=254)
    phone: str | None = Field(default=None, max_length=50)
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(default=None, alias="zip")
    school: str | None = None
    field_of_interest: str | None = None

    model_config = {"populate_by_name": True}

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value


class MilestoneAssignForm(FormModel):
    milestone_id: int
    achieved_date: date | None = None


class PublicDonationForm(FormModel):
    donor_first_name: str = Field(min_length=1, max_length=100)
    donor_last_name: str = Field(min_length=1, max_length=100)
    donor_email: str | None = Field(default=None, max_length=254)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)

    @field_validator("donor_email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value
