"""
Booking ledger: events, slots and who occupies them.

CONCURRENCY STRATEGY: Unique Constraint as the Arbiter
=======================================================

Problem:
  Two users claim slot 3 of the same event at the same moment.
  Both check, both see the slot free, both insert.
  Result: two occupants for one slot.

Solution:
  The bookings table carries UNIQUE (event_id, slot_index).

  1. Read the event and validate the slot index
  2. Look for an existing booking on the slot (fast path, friendly error)
  3. INSERT the booking
  4. If the INSERT violates uq_booking_event_slot, another transaction
     committed first -> SlotTaken

  The pre-check alone is racy; the constraint is what makes it correct.
  No in-process locks: several API instances can run against one database
  and the first committed INSERT wins everywhere.

Alternatives considered:
  - SELECT FOR UPDATE on the event row: serializes every booking for an
    event, including claims on different slots.
  - Optimistic version counter on the event: retries on unrelated slots.

Every operation runs in its own session and transaction, so the ledger is
safe to share between concurrent requests.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Union

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotboard.core.exceptions import EventNotFound, InvalidRequest, SlotTaken, StoreUnavailable
from slotboard.core.logging import get_logger
from slotboard.models.booking import DEFAULT_STATUS, Booking
from slotboard.models.event import Event
from slotboard.schemas.common import as_utc

logger = get_logger(__name__)

_timestamp = TypeAdapter(datetime)
_integer = TypeAdapter(int)


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    # PostgreSQL: "violates foreign key constraint", SQLite: "FOREIGN KEY constraint failed"
    return "foreign key" in str(exc.orig).lower()


class BookingLedger:
    """Owns the (event, slot) -> occupant mapping."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Session with an open transaction; store failures become StoreUnavailable."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.error("store_error", operation=operation, error=str(exc), error_type=type(exc).__name__)
            raise StoreUnavailable(operation) from exc

    # ---------------------------------------------------------------- events

    async def create_event(
        self,
        creator_id: int,
        slots_count: int,
        start_time: Union[datetime, str],
    ) -> Event:
        """Insert a new event. Coerces slots_count and start_time, rejects junk."""
        if creator_id is None or slots_count is None or start_time is None:
            raise InvalidRequest("creator_id, slots_count and start_time are required")
        try:
            creator_id = _integer.validate_python(creator_id)
            slots_count = _integer.validate_python(slots_count)
            start_time = as_utc(_timestamp.validate_python(start_time))
        except ValidationError as exc:
            raise InvalidRequest(f"Invalid event fields: {exc.errors()[0]['msg']}") from exc
        if slots_count <= 0:
            raise InvalidRequest("slots_count must be a positive integer")

        async with self._transaction("create_event") as session:
            event = Event(creator_id=creator_id, slots_count=slots_count, start_time=start_time)
            session.add(event)
            await session.flush()

        logger.info("event_created", event_id=event.id, creator_id=creator_id, slots=slots_count)
        return event

    async def list_events(self) -> list[Event]:
        """All events, newest start first, each with its participants loaded."""
        async with self._transaction("list_events") as session:
            result = await session.execute(
                select(Event).order_by(Event.start_time.desc(), Event.id.desc())
            )
            return list(result.scalars().all())

    async def get_event(self, event_id: int) -> Optional[Event]:
        async with self._transaction("get_event") as session:
            return await session.get(Event, event_id)

    async def delete_event(self, event_id: int) -> int:
        """
        Remove an event and its bookings in one transaction.
        Returns the number of bookings removed. Unknown ids are a no-op.
        """
        async with self._transaction("delete_event") as session:
            bookings_result = await session.execute(
                delete(Booking).where(Booking.event_id == event_id)
            )
            event_result = await session.execute(delete(Event).where(Event.id == event_id))

        logger.info(
            "event_deleted",
            event_id=event_id,
            existed=bool(event_result.rowcount),
            bookings_removed=bookings_result.rowcount,
        )
        return bookings_result.rowcount

    # -------------------------------------------------------------- bookings

    async def create_booking(
        self,
        event_id: int,
        slot_index: int,
        user_id: int,
        user_name: Optional[str] = None,
        user_photo: Optional[str] = None,
    ) -> Booking:
        """
        Claim one slot. Exactly one of any number of concurrent claims on the
        same slot succeeds; the rest raise SlotTaken.
        """
        async with self._transaction("create_booking") as session:
            slots_count = await session.scalar(
                select(Event.slots_count).where(Event.id == event_id)
            )
            if slots_count is None:
                raise EventNotFound(event_id)

            if not 0 <= slot_index < slots_count:
                raise InvalidRequest(
                    f"Slot {slot_index} is outside event {event_id} (slots 0..{slots_count - 1})"
                )

            occupied = await session.scalar(
                select(Booking.id).where(
                    Booking.event_id == event_id,
                    Booking.slot_index == slot_index,
                )
            )
            if occupied is not None:
                logger.info("slot_taken", event_id=event_id, slot_index=slot_index, user_id=user_id)
                raise SlotTaken(event_id, slot_index)

            booking = Booking(
                event_id=event_id,
                slot_index=slot_index,
                user_id=user_id,
                user_name=user_name,
                user_photo=user_photo,
                status=DEFAULT_STATUS,
                notification_sent=False,
            )
            session.add(booking)
            try:
                await session.flush()
            except IntegrityError as exc:
                if _is_foreign_key_violation(exc):
                    raise EventNotFound(event_id) from exc
                # Lost the race: a concurrent claim committed first
                logger.info(
                    "slot_taken",
                    event_id=event_id,
                    slot_index=slot_index,
                    user_id=user_id,
                    race=True,
                )
                raise SlotTaken(event_id, slot_index) from exc

        logger.info(
            "booking_created",
            booking_id=booking.id,
            event_id=event_id,
            slot_index=slot_index,
            user_id=user_id,
        )
        return booking

    async def get_booking(self, event_id: int, slot_index: int) -> Optional[Booking]:
        async with self._transaction("get_booking") as session:
            return await session.scalar(
                select(Booking).where(
                    Booking.event_id == event_id,
                    Booking.slot_index == slot_index,
                )
            )

    async def cancel_booking(self, event_id: int, slot_index: int, user_id: int) -> int:
        """
        Release a slot. Only the exact (event, slot, user) triple matches.
        Returns rows removed; zero is not an error.
        """
        async with self._transaction("cancel_booking") as session:
            result = await session.execute(
                delete(Booking).where(
                    Booking.event_id == event_id,
                    Booking.slot_index == slot_index,
                    Booking.user_id == user_id,
                )
            )

        logger.info(
            "booking_cancelled",
            event_id=event_id,
            slot_index=slot_index,
            user_id=user_id,
            removed=result.rowcount,
        )
        return result.rowcount

    async def set_booking_status(self, event_id: int, user_id: int, status: str) -> int:
        """
        Set status on every booking the user holds for the event.
        A user with several slots on one event gets all of them updated.
        """
        async with self._transaction("set_booking_status") as session:
            result = await session.execute(
                update(Booking)
                .where(Booking.event_id == event_id, Booking.user_id == user_id)
                .values(status=status)
            )

        logger.info(
            "booking_status_updated",
            event_id=event_id,
            user_id=user_id,
            status=status,
            updated=result.rowcount,
        )
        return result.rowcount
