"""
Domain errors raised by the booking ledger and reminder dispatcher.

Each ledger error carries the HTTP status and machine-readable code the API
renders, so routes never translate errors by hand:

  InvalidRequest     400  malformed or missing fields, slot outside the event
  SlotTaken          400  the slot already has an occupant
  EventNotFound      404  booking against an event that does not exist
  StoreUnavailable   500  any database failure; details stay in the server log

NotificationSendFailure never reaches a caller. The dispatcher logs it and
retries the booking on its next cycle.
"""

from typing import Optional

from fastapi import status


class SlotboardError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    message: str = "Unexpected failure"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidRequest(SlotboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"
    message = "Request is missing required fields or has invalid values"


class SlotTaken(SlotboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "slot_taken"

    def __init__(self, event_id: int, slot_index: int):
        self.event_id = event_id
        self.slot_index = slot_index
        super().__init__(f"Slot {slot_index} of event {event_id} is already taken")


class EventNotFound(SlotboardError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "event_not_found"

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class StoreUnavailable(SlotboardError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "store_unavailable"
    message = "The booking store is unavailable, please try again later"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__()


class NotificationSendFailure(Exception):
    """A reminder could not be delivered to the user."""

    def __init__(self, user_id: int, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Failed to notify user {user_id}: {reason}")
