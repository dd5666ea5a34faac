from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class FormModel(BaseModel):
    """Base for HTML form payloads: trims strings and treats blank fields as missing."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    value = None
            cleaned[key] = value
        return cleaned


def as_utc(value: datetime | None) -> datetime | None:
    # datetime-local inputs carry no offset; they are stored as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
