"""
Booking endpoints: claim a slot, release it, update status.
"""

import time

from fastapi import APIRouter, Depends, status

from slotboard.api.deps import get_ledger
from slotboard.core.exceptions import SlotTaken, SlotboardError
from slotboard.core.metrics import booking_latency, record_booking_attempt
from slotboard.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingStatusResponse,
    BookingStatusUpdate,
)
from slotboard.schemas.common import ErrorResponse, MessageResponse
from slotboard.services.booking_ledger import BookingLedger

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    ledger: BookingLedger = Depends(get_ledger),
):
    """
    Claim one slot of an event.

    The database unique constraint on (event_id, slot_index) decides races:
    of several simultaneous claims exactly one gets 201, the others get 400
    with code "slot_taken".
    """
    started = time.perf_counter()
    try:
        booking = await ledger.create_booking(
            event_id=booking_data.event_id,
            slot_index=booking_data.slot_index,
            user_id=booking_data.user_id,
            user_name=booking_data.user_name,
            user_photo=booking_data.user_photo,
        )
    except SlotTaken:
        record_booking_attempt("conflict")
        raise
    except SlotboardError:
        record_booking_attempt("error")
        raise
    finally:
        booking_latency.observe(time.perf_counter() - started)

    record_booking_attempt("success")
    return booking


@router.delete("", response_model=MessageResponse)
async def cancel_booking_endpoint(
    booking_data: BookingCancel,
    ledger: BookingLedger = Depends(get_ledger),
):
    """Release a slot. Matching is by the exact (event, slot, user) triple."""
    await ledger.cancel_booking(
        event_id=booking_data.event_id,
        slot_index=booking_data.slot_index,
        user_id=booking_data.user_id,
    )
    return MessageResponse(message="Booking cancelled")


@router.patch("/status", response_model=BookingStatusResponse)
async def update_booking_status_endpoint(
    status_data: BookingStatusUpdate,
    ledger: BookingLedger = Depends(get_ledger),
):
    """Set status on every booking the user holds for the event."""
    updated = await ledger.set_booking_status(
        event_id=status_data.event_id,
        user_id=status_data.user_id,
        status=status_data.status,
    )
    return BookingStatusResponse(message="Booking status updated", updated=updated)
