from slotboard.models.event import Event
from slotboard.models.booking import Booking

__all__ = ["Event", "Booking"]
