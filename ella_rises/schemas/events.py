from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ella_rises.schemas.forms import FormModel, as_utc


class EventTemplateOut(BaseModel):
    id: int
    name: str
    type: str | None = None
    description: str | None = None
    default_capacity: int | None = None
    instances_count: int = 0


class EventTemplateOption(BaseModel):
    id: int
    name: str


def _drop_missing(data: Any) -> Any:
    # Instances whose template row is gone fall back to the display defaults.
    if isinstance(data, dict):
        return {key: value for key, value in data.items() if value is not None}
    return data


class EventInstanceListItem(BaseModel):
    id: int
    event_id: int
    name: str = "Event"
    type: str = "General"
    location: str | None = None
    start_time: datetime
    capacity: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _apply_defaults(cls, data: Any) -> Any:
        return _drop_missing(data)


class EventInstanceOut(BaseModel):
    id: int
    event_id: int
    event_name: str
    event_type: str | None = None
    event_description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    location: str | None = None
    capacity: int | None = None


class EventInstanceOption(BaseModel):
    id: int
    name: str
    start_time: datetime


class PublicEventOut(BaseModel):
    name: str = "Event"
    type: str = "General"
    location: str = "TBD"
    start_time: datetime
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _apply_defaults(cls, data: Any) -> Any:
        return _drop_missing(data)


class EventTemplateForm(FormModel):
    name: str = Field(min_length=1, max_length=200)
    type: str | None = None
    description: str | None = None
    default_capacity: int | None = Field(default=None, ge=0)


class EventInstanceForm(FormModel):
    event_id: int
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = None
    capacity: int | None = Field(default=None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "EventInstanceForm":
        if self.start_time and self.end_time and self.end_time < self.start_time:
            raise ValueError("end time must not be before start time")
        return self
