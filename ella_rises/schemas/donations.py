from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from ella_rises.schemas.forms import FormModel

ANONYMOUS_DONOR = "Anonymous"
# Path segment standing in for the missing participant of an anonymous donation.
ANONYMOUS_TOKEN = "null"


class DonationOut(BaseModel):
    participant_id: int | None = None
    donation_number: int
    donor: str
    email: str | None = None
    amount: Decimal
    donation_date: date

    @property
    def participant_token(self) -> str:
        return ANONYMOUS_TOKEN if self.participant_id is None else str(self.participant_id)

    @property
    def path(self) -> str:
        return f"/donations/{self.participant_token}/{self.donation_number}"


class DonationForm(FormModel):
    participant_id: int | None = None
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    donation_date: date | None = Field(default=None, alias="date")

    model_config = {"populate_by_name": True}
