"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from slotboard.schemas.booking import BookingResponse
from slotboard.schemas.common import as_utc


class EventCreate(BaseModel):
    creator_id: int
    slots_count: int = Field(..., gt=0)
    start_time: datetime


class EventResponse(BaseModel):
    id: int
    creator_id: int
    slots_count: int
    start_time: datetime

    model_config = {"from_attributes": True}

    @field_validator("start_time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive values; everything is stored in UTC
        return as_utc(value)


class EventWithParticipants(EventResponse):
    participants: list[BookingResponse] = []
