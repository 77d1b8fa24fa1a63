"""
Tests for the reminder dispatcher: window selection, retries, timeouts and the ticker.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from slotboard.services.booking_ledger import BookingLedger
from slotboard.services.reminder_dispatcher import DueReminder, ReminderDispatcher
from tests.conftest import FakeLock, FakeNotifier


NOW = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)


class FailingWrites:
    """Session factory whose next write statements raise, as if the connection dropped."""

    def __init__(self, factory, failures: int = 1):
        self._factory = factory
        self.failures = failures

    def __call__(self):
        session = self._factory()
        execute = session.execute

        async def flaky_execute(statement, *args, **kwargs):
            if self.failures and getattr(statement, "is_dml", False):
                self.failures -= 1
                raise OperationalError(str(statement), {}, Exception("connection reset"))
            return await execute(statement, *args, **kwargs)

        session.execute = flaky_execute
        return session


@pytest.mark.asyncio
async def test_cycle_sends_one_reminder_and_marks_sent(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42, "Alice", None)

    report = await dispatcher.run_cycle(now=NOW)

    assert report.sent == 1
    assert report.failed == 0
    assert [user for user, _ in notifier.sent] == [42]
    assert "12:10 UTC" in notifier.sent[0][1]
    assert (await ledger.get_booking(event.id, 0)).notification_sent is True


@pytest.mark.asyncio
async def test_second_cycle_sends_nothing(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)

    await dispatcher.run_cycle(now=NOW)
    report = await dispatcher.run_cycle(now=NOW + timedelta(minutes=1))

    assert report.sent == 0
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_failed_send_is_retried_next_cycle(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)
    notifier.failing_users.add(42)

    report = await dispatcher.run_cycle(now=NOW)

    assert report.failed == 1
    assert (await ledger.get_booking(event.id, 0)).notification_sent is False

    notifier.failing_users.clear()
    retry = await dispatcher.run_cycle(now=NOW + timedelta(minutes=1))

    assert retry.sent == 1
    assert notifier.attempts == [42, 42]
    assert (await ledger.get_booking(event.id, 0)).notification_sent is True


@pytest.mark.asyncio
async def test_failure_does_not_abort_other_reminders(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=5), now=NOW)
    await ledger.create_booking(event.id, 0, 41)
    await ledger.create_booking(event.id, 1, 42)
    await ledger.create_booking(event.id, 2, 43)
    notifier.failing_users.add(41)

    report = await dispatcher.run_cycle(now=NOW)

    assert report.sent == 2
    assert report.failed == 1
    assert sorted(user for user, _ in notifier.sent) == [42, 43]
    assert (await ledger.get_booking(event.id, 0)).notification_sent is False


@pytest.mark.asyncio
async def test_unexpected_send_error_does_not_abort_cycle(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=5), now=NOW)
    await ledger.create_booking(event.id, 0, 41)
    await ledger.create_booking(event.id, 1, 42)
    notifier.crashing_users.add(41)

    report = await dispatcher.run_cycle(now=NOW)

    assert report.failed == 1
    assert report.sent == 1
    assert notifier.attempts == [41, 42]
    assert [user for user, _ in notifier.sent] == [42]
    assert (await ledger.get_booking(event.id, 0)).notification_sent is False
    assert (await ledger.get_booking(event.id, 1)).notification_sent is True


@pytest.mark.asyncio
async def test_failed_mark_write_resends_next_cycle(
    database, ledger: BookingLedger, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)
    flaky = ReminderDispatcher(FailingWrites(database.sessionmaker), notifier, send_timeout=0.2)

    report = await flaky.run_cycle(now=NOW)

    assert report.sent == 1
    assert report.unmarked == 1
    assert report.failed == 0
    assert (await ledger.get_booking(event.id, 0)).notification_sent is False

    retry = await flaky.run_cycle(now=NOW + timedelta(minutes=1))

    assert retry.sent == 1
    assert retry.unmarked == 0
    assert [user for user, _ in notifier.sent] == [42, 42]
    assert (await ledger.get_booking(event.id, 0)).notification_sent is True


@pytest.mark.asyncio
async def test_slot_booked_during_send_stays_due(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)

    async def book_second_slot(user_id: int) -> None:
        notifier.on_send = None
        await ledger.create_booking(event.id, 1, user_id)

    notifier.on_send = book_second_slot

    report = await dispatcher.run_cycle(now=NOW)

    assert report.sent == 1
    assert (await ledger.get_booking(event.id, 0)).notification_sent is True
    assert (await ledger.get_booking(event.id, 1)).notification_sent is False

    follow_up = await dispatcher.run_cycle(now=NOW + timedelta(minutes=1))

    assert follow_up.sent == 1
    assert "slot 2" in notifier.sent[1][1]
    assert (await ledger.get_booking(event.id, 1)).notification_sent is True


@pytest.mark.asyncio
async def test_events_outside_window_are_ignored(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    too_far = await make_event(timedelta(minutes=30), now=NOW)
    started = await make_event(-timedelta(minutes=1), now=NOW)
    await ledger.create_booking(too_far.id, 0, 42)
    await ledger.create_booking(started.id, 0, 43)

    report = await dispatcher.run_cycle(now=NOW)

    assert report.sent == 0
    assert notifier.attempts == []


@pytest.mark.asyncio
async def test_failed_reminder_not_retried_after_event_starts(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=2), now=NOW)
    await ledger.create_booking(event.id, 0, 42)
    notifier.failing_users.add(42)
    await dispatcher.run_cycle(now=NOW)

    notifier.failing_users.clear()
    report = await dispatcher.run_cycle(now=NOW + timedelta(minutes=3))

    assert report.sent == 0
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_hung_send_times_out(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)
    notifier.hang = True

    report = await asyncio.wait_for(dispatcher.run_cycle(now=NOW), timeout=5)

    assert report.failed == 1
    assert (await ledger.get_booking(event.id, 0)).notification_sent is False


@pytest.mark.asyncio
async def test_user_with_two_slots_gets_one_reminder(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)
    await ledger.create_booking(event.id, 2, 42)

    report = await dispatcher.run_cycle(now=NOW)

    assert report.sent == 1
    assert "slots 1, 3" in notifier.sent[0][1]
    assert (await ledger.get_booking(event.id, 0)).notification_sent is True
    assert (await ledger.get_booking(event.id, 2)).notification_sent is True


@pytest.mark.asyncio
async def test_overlapping_cycle_is_skipped(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10), now=NOW)
    await ledger.create_booking(event.id, 0, 42)
    notifier.hang = True

    first = asyncio.create_task(dispatcher.run_cycle(now=NOW))
    while not notifier.attempts:
        await asyncio.sleep(0.01)

    second = await dispatcher.run_cycle(now=NOW)
    assert second.skipped is True

    await first


@pytest.mark.asyncio
async def test_cycle_skipped_when_lock_held_elsewhere(database, notifier: FakeNotifier):
    lock = FakeLock(available=False)
    locked = ReminderDispatcher(database.sessionmaker, notifier, lock=lock)

    report = await locked.run_cycle(now=NOW)

    assert report.skipped is True
    assert lock.released == 0


@pytest.mark.asyncio
async def test_lock_released_after_cycle(database, notifier: FakeNotifier):
    lock = FakeLock()
    guarded = ReminderDispatcher(database.sessionmaker, notifier, lock=lock)

    report = await guarded.run_cycle(now=NOW)

    assert report.skipped is False
    assert lock.released == 1


@pytest.mark.asyncio
async def test_ticker_start_and_stop(
    ledger: BookingLedger, dispatcher: ReminderDispatcher, notifier: FakeNotifier, make_event
):
    event = await make_event(timedelta(minutes=10))
    await ledger.create_booking(event.id, 0, 42)

    dispatcher.start()
    assert dispatcher.running

    for _ in range(200):
        if notifier.sent:
            break
        await asyncio.sleep(0.01)

    await dispatcher.stop()
    assert not dispatcher.running
    assert [user for user, _ in notifier.sent] == [42]


def test_reminder_text_single_slot():
    reminder = DueReminder(1, 42, datetime(2030, 6, 1, 18, 45, tzinfo=timezone.utc), [4])
    text = reminder.render()
    assert "18:45 UTC" in text
    assert "slot 5" in text
