"""
Event endpoints: create, list with participants, delete.
"""

from fastapi import APIRouter, Depends, status

from slotboard.api.deps import get_ledger
from slotboard.schemas.common import MessageResponse
from slotboard.schemas.event import EventCreate, EventResponse, EventWithParticipants
from slotboard.services.booking_ledger import BookingLedger

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=list[EventWithParticipants])
async def list_events_endpoint(ledger: BookingLedger = Depends(get_ledger)):
    """All events, latest start first, each with the bookings on its slots."""
    return await ledger.list_events()


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    ledger: BookingLedger = Depends(get_ledger),
):
    return await ledger.create_event(
        creator_id=event_data.creator_id,
        slots_count=event_data.slots_count,
        start_time=event_data.start_time,
    )


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event_endpoint(
    event_id: int,
    ledger: BookingLedger = Depends(get_ledger),
):
    """Delete an event together with all of its bookings. Unknown ids succeed."""
    await ledger.delete_event(event_id)
    return MessageResponse(message="Event and its bookings deleted")
