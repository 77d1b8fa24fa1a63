"""
Pydantic schemas for booking-related request/response validation.
"""

from typing import Optional
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    event_id: int
    slot_index: int = Field(..., ge=0)
    user_id: int
    user_name: Optional[str] = Field(None, max_length=255)
    user_photo: Optional[str] = Field(None, max_length=1024)


class BookingCancel(BaseModel):
    event_id: int
    slot_index: int
    user_id: int


class BookingStatusUpdate(BaseModel):
    event_id: int
    user_id: int
    status: str = Field(..., min_length=1, max_length=20)


class BookingResponse(BaseModel):
    id: int
    event_id: int
    slot_index: int
    user_id: int
    user_name: Optional[str]
    user_photo: Optional[str]
    status: str
    notification_sent: bool

    model_config = {"from_attributes": True}


class BookingStatusResponse(BaseModel):
    message: str
    updated: int
