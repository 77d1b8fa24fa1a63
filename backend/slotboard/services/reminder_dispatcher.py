"""
Reminder dispatcher: tells occupants their event is about to start.

DELIVERY MODEL: At-Least-Once Until the Window Closes
=====================================================

Every tick:
  1. window = [now, now + lookahead]
  2. find bookings whose event starts inside the window and whose
     notification_sent is still false
  3. send the reminder, THEN mark the booking as notified

  A failed send leaves the flag false, so the next tick retries it, for as
  long as the event start is still ahead of "now". A send that succeeds but
  whose mark write fails is sent again next tick. Marking before sending
  would turn that duplicate into a lost reminder, which is worse.

Overlap:
  The ticker awaits each cycle before sleeping, so one dispatcher never
  overlaps itself. A running flag covers direct run_cycle() calls and an
  optional Redis lock covers other instances.

Every send is wrapped in a timeout so a hung channel delays at most one
reminder, never the ticker.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotboard.core.exceptions import NotificationSendFailure, StoreUnavailable
from slotboard.core.logging import get_logger
from slotboard.core.metrics import record_reminder, reminder_cycle_duration, reminder_cycles_skipped
from slotboard.infrastructure.redis_client import CycleLock
from slotboard.models.booking import Booking
from slotboard.models.event import Event
from slotboard.schemas.common import as_utc
from slotboard.services.notifier import Notifier

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_LOOKAHEAD = timedelta(minutes=15)
DEFAULT_SEND_TIMEOUT_SECONDS = 10.0


@dataclass
class DueReminder:
    event_id: int
    user_id: int
    start_time: datetime
    slot_indexes: list[int] = field(default_factory=list)

    def render(self) -> str:
        slots = ", ".join(str(index + 1) for index in sorted(self.slot_indexes))
        label = "slot" if len(self.slot_indexes) == 1 else "slots"
        return (
            f"⏰ Reminder: your event starts at {self.start_time:%H:%M} UTC "
            f"({self.start_time:%Y-%m-%d}).\n"
            f"You are booked in {label} {slots}."
        )


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    # Delivered but the notified flag could not be written; sent again next cycle
    unmarked: int = 0
    skipped: bool = False


class ReminderDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        lock: Optional[CycleLock] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self.interval = interval
        self.lookahead = lookahead
        self.send_timeout = send_timeout
        self._lock = lock
        self._cycle_running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ---------------------------------------------------------------- ticker

    def start(self) -> None:
        """Start the recurring sweep on the current event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._tick_loop(), name="reminder-dispatcher")
        logger.info(
            "reminder_dispatcher_started",
            interval_seconds=self.interval,
            lookahead_minutes=self.lookahead.total_seconds() / 60,
        )

    async def stop(self) -> None:
        """Signal the ticker and wait for the current cycle to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("reminder_dispatcher_stopped")

    async def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception as exc:
                # One broken cycle must not end the ticker
                logger.exception("reminder_cycle_failed", error=str(exc))

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    # ----------------------------------------------------------------- cycle

    async def run_cycle(self, now: Optional[datetime] = None) -> DispatchReport:
        """Run one sweep. Returns a skipped report if a sweep is already in progress."""
        if self._cycle_running:
            reminder_cycles_skipped.inc()
            logger.warning("reminder_cycle_skipped", reason="cycle_in_progress")
            return DispatchReport(skipped=True)

        self._cycle_running = True
        try:
            if self._lock is not None and not await self._lock.acquire():
                reminder_cycles_skipped.inc()
                logger.info("reminder_cycle_skipped", reason="locked_by_other_instance")
                return DispatchReport(skipped=True)
            try:
                return await self._sweep(as_utc(now) if now else datetime.now(timezone.utc))
            finally:
                if self._lock is not None:
                    await self._lock.release()
        finally:
            self._cycle_running = False

    async def _sweep(self, now: datetime) -> DispatchReport:
        started = time.perf_counter()
        boundary = now + self.lookahead
        report = DispatchReport()

        due = await self._find_due(now, boundary)
        for reminder in due:
            if await self._deliver(reminder):
                report.sent += 1
                if not await self._mark_sent(reminder):
                    report.unmarked += 1
            else:
                report.failed += 1

        duration = time.perf_counter() - started
        reminder_cycle_duration.observe(duration)
        if due:
            logger.info(
                "reminder_cycle_completed",
                due=len(due),
                sent=report.sent,
                failed=report.failed,
                unmarked=report.unmarked,
                duration_ms=round(duration * 1000, 2),
            )
        return report

    async def _find_due(self, now: datetime, boundary: datetime) -> list[DueReminder]:
        """Unnotified bookings of events starting in [now, boundary], one entry per (event, user)."""
        query = (
            select(Booking.event_id, Booking.user_id, Booking.slot_index, Event.start_time)
            .join(Event, Event.id == Booking.event_id)
            .where(
                Event.start_time >= now,
                Event.start_time <= boundary,
                Booking.notification_sent.is_(False),
            )
            .order_by(Event.start_time, Booking.event_id, Booking.slot_index)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as exc:
            logger.error("reminder_query_failed", error=str(exc))
            raise StoreUnavailable("find_due_reminders") from exc

        grouped: dict[tuple[int, int], DueReminder] = {}
        for event_id, user_id, slot_index, start_time in rows:
            key = (event_id, user_id)
            if key not in grouped:
                grouped[key] = DueReminder(event_id, user_id, as_utc(start_time))
            grouped[key].slot_indexes.append(slot_index)
        return list(grouped.values())

    async def _deliver(self, reminder: DueReminder) -> bool:
        try:
            await asyncio.wait_for(
                self._notifier.send(reminder.user_id, reminder.render()),
                timeout=self.send_timeout,
            )
        except NotificationSendFailure as exc:
            reason = exc.reason
        except asyncio.TimeoutError:
            reason = f"timed out after {self.send_timeout}s"
        except Exception as exc:
            # Unexpected channel error: this reminder fails, the rest of the cycle goes on
            record_reminder(sent=False)
            logger.exception(
                "reminder_send_failed",
                event_id=reminder.event_id,
                user_id=reminder.user_id,
                reason=f"{type(exc).__name__}: {exc}",
            )
            return False
        else:
            record_reminder(sent=True)
            logger.info("reminder_sent", event_id=reminder.event_id, user_id=reminder.user_id)
            return True

        record_reminder(sent=False)
        logger.warning(
            "reminder_send_failed",
            event_id=reminder.event_id,
            user_id=reminder.user_id,
            reason=reason,
        )
        return False

    async def _mark_sent(self, reminder: DueReminder) -> bool:
        """Flag exactly the bookings named in the reminder; slots booked since stay due."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(Booking)
                        .where(
                            Booking.event_id == reminder.event_id,
                            Booking.user_id == reminder.user_id,
                            Booking.slot_index.in_(reminder.slot_indexes),
                        )
                        .values(notification_sent=True)
                    )
        except SQLAlchemyError as exc:
            # Already delivered; the next cycle will send it again
            logger.error(
                "reminder_mark_failed",
                event_id=reminder.event_id,
                user_id=reminder.user_id,
                error=str(exc),
            )
            return False
        return True
