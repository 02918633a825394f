"""Pydantic schemas for TimeSlots."""

import re
from datetime import datetime, time
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import Pagination

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?")


def parse_time_of_day(value) -> time:
    """Accept "09:00", "09:00:00" or a placeholder datetime such as
    "0000-01-01T09:00:00Z"; only the time of day is kept."""
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        raise ValueError("expected a time of day")
    text = value.strip()
    if "T" in text:
        text = text.split("T", 1)[1]
    match = _TIME_RE.match(text)
    if not match:
        raise ValueError(f"invalid time of day: {value!r}")
    hour, minute, second = match.group(1), match.group(2), match.group(3) or "0"
    return time(int(hour), int(minute), int(second))


class TimeSlotIn(BaseModel):
    """One slot in a create or batch-upsert request. id present = update."""
    id: Optional[UUID] = None
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    max_bookings: int = 1
    version: Optional[int] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _time_of_day(cls, value):
        return parse_time_of_day(value)


class TimeSlotBatchUpsert(BaseModel):
    service_id: UUID
    time_slots: list[TimeSlotIn] = Field(min_length=1)


class TimeSlotOut(BaseModel):
    id: UUID
    service_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    max_bookings: int
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TimeSlotList(BaseModel):
    time_slots: list[TimeSlotOut]
    pagination: Optional[Pagination] = None


class TimeSlotsDeleted(BaseModel):
    service_id: UUID
    day_of_week: int
    deleted_count: int
