from datetime import date

from pydantic import BaseModel, Field

from ella_rises.schemas.forms import FormModel


class MilestoneOut(BaseModel):
    id: int
    title: str
    description: str | None = None


class MilestoneAchieverOut(BaseModel):
    participant_id: int
    name: str
    achieved_date: date


class MilestoneDetailOut(MilestoneOut):
    achievers: list[MilestoneAchieverOut] = Field(default_factory=list)


class MilestoneCountOut(BaseModel):
    milestone_id: int
    title: str
    count: int = 0


class MilestoneForm(FormModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
