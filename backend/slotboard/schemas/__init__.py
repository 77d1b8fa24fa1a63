from slotboard.schemas.common import MessageResponse, ErrorResponse
from slotboard.schemas.event import EventCreate, EventResponse, EventWithParticipants
from slotboard.schemas.booking import (
    BookingCreate, BookingCancel, BookingStatusUpdate, BookingResponse, BookingStatusResponse,
)

__all__ = [
    "MessageResponse", "ErrorResponse",
    "EventCreate", "EventResponse", "EventWithParticipants",
    "BookingCreate", "BookingCancel", "BookingStatusUpdate", "BookingResponse", "BookingStatusResponse",
]
