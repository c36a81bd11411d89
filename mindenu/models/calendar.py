"""
Calendar-related Pydantic models.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CalendarEvent(BaseModel):
    """Normalized calendar event. Times are ISO-8601; all-day events are date-only."""
    id: str
    title: str
    start: str
    end: str
    location: str = ""
    description: str = ""
    attendees: List[str] = []


def _check_iso(value: str) -> str:
    value = value.strip()
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("must be an ISO-8601 date-time")
    return value


class EventDraft(BaseModel):
    """A fully specified event to create."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    title: str = Field(min_length=1)
    start: str
    end: str
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = []
    time_zone: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _validate_times(cls, value: str) -> str:
        return _check_iso(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "EventDraft":
        start = datetime.fromisoformat(self.start.replace("Z", "+00:00"))
        end = datetime.fromisoformat(self.end.replace("Z", "+00:00"))
        if (start.tzinfo is None) == (end.tzinfo is None) and end <= start:
            raise ValueError("end must be after start")
        return self


class EventDeletion(BaseModel):
    """Reference to an event to delete."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    event_id: str = Field(min_length=1)
    title: Optional[str] = None
    start: Optional[str] = None

    @field_validator("event_id")
    @classmethod
    def _opaque_id(cls, value: str) -> str:
        value = value.strip()
        if not value or any(ch in value for ch in "/?#\\") or ".." in value:
            raise ValueError("must be an event id from the calendar")
        return value


class DeleteResult(BaseModel):
    """Result of deleting an event."""
    ok: bool = True
    already_deleted: bool = False
