"""Tests for src.core.scheduler — checking passes and the trigger loop."""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.core.dispatcher import NotificationDispatcher
from src.core.scheduler import SchedulerLoop

USER_ID = 12345
NOW = datetime(2024, 5, 1, 12, 0)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def notifier():
    notifier = AsyncMock()
    notifier.send_message.side_effect = range(1000, 2000)
    return notifier


@pytest.fixture
def clock():
    return _Clock(NOW)


@pytest.fixture
def scheduler(detector, advancer, event_db, todo_db, notifier, clock):
    return SchedulerLoop(
        detector, NotificationDispatcher(notifier), advancer, event_db, todo_db,
        interval_seconds=60, startup_delay_seconds=0, now_provider=clock,
    )


@pytest.fixture
def quiet_summary(settings_db):
    """Settings row with the daily summary off, so passes only send what a test adds."""
    s = settings_db.get_or_create(USER_ID)
    settings_db.update(dataclasses.replace(s, daily_summary_enabled=False))
    return settings_db.get(USER_ID)


def _sent_texts(notifier) -> list[str]:
    return [c.args[1] for c in notifier.send_message.call_args_list]


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class TestReminderPass:
    @pytest.mark.asyncio
    async def test_nags_until_acknowledged(self, scheduler, reminder_db, advancer, notifier, clock, quiet_summary):
        r = reminder_db.add(USER_ID, "Take pills", remind_at=NOW, dtstart=NOW)

        await scheduler.check()
        assert notifier.send_message.await_count == 1
        assert reminder_db.get(r.id, USER_ID).last_message_id == 1000

        clock.now = NOW + timedelta(seconds=30)
        await scheduler.check()
        assert notifier.send_message.await_count == 1

        clock.now = NOW + timedelta(seconds=61)
        await scheduler.check()
        assert notifier.send_message.await_count == 2
        notifier.delete_message.assert_awaited_once_with(USER_ID, 1000)

        advancer.acknowledge_reminder(r.id, USER_ID, clock.now)
        clock.now = NOW + timedelta(hours=1)
        await scheduler.check()
        assert notifier.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, scheduler, reminder_db, notifier, quiet_summary):
        first = reminder_db.add(USER_ID, "first", remind_at=NOW - timedelta(minutes=2))
        second = reminder_db.add(USER_ID, "second", remind_at=NOW - timedelta(minutes=1))
        notifier.send_message.side_effect = [RuntimeError("network down"), 2001]

        await scheduler.check()

        assert reminder_db.get(first.id, USER_ID).notified_at is None
        assert reminder_db.get(second.id, USER_ID).notified_at == NOW


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEventPass:
    @pytest.mark.asyncio
    async def test_notifies_once_in_lead_window(self, scheduler, event_db, notifier, clock, quiet_summary):
        start = NOW + timedelta(minutes=20)
        e = event_db.add(USER_ID, "Standup", dtstart=start, next_occurrence=start, notification_minutes=30)

        await scheduler.check()
        clock.now = NOW + timedelta(minutes=5)
        await scheduler.check()

        assert notifier.send_message.await_count == 1
        assert event_db.get(e.id, USER_ID).notified_at == NOW

    @pytest.mark.asyncio
    async def test_elapsed_weekly_rolls_forward_silently(self, scheduler, event_db, notifier, quiet_summary):
        start = NOW - timedelta(minutes=10)
        e = event_db.add(
            USER_ID, "Gym", dtstart=start, next_occurrence=start, recurrence_rule="FREQ=WEEKLY",
        )

        await scheduler.check()

        notifier.send_message.assert_not_called()
        assert event_db.get(e.id, USER_ID).next_occurrence == start + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_rolled_event_notified_again_next_week(self, scheduler, event_db, notifier, clock, quiet_summary):
        start = NOW + timedelta(minutes=10)
        e = event_db.add(
            USER_ID, "Gym", dtstart=start, next_occurrence=start, recurrence_rule="FREQ=WEEKLY",
        )

        await scheduler.check()
        clock.now = start + timedelta(minutes=1)
        await scheduler.check()
        assert event_db.get(e.id, USER_ID).notified_at is None

        clock.now = start + timedelta(days=7, minutes=-15)
        await scheduler.check()
        assert notifier.send_message.await_count == 2


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


class TestTodoPass:
    @pytest.mark.asyncio
    async def test_batch_is_one_message(self, scheduler, todo_db, settings_db, notifier, quiet_summary):
        for i in range(3):
            todo_db.add(USER_ID, f"task {i}", priority=3, due_time=NOW + timedelta(hours=1))

        await scheduler.check()

        assert notifier.send_message.await_count == 1
        assert "(3 items)" in _sent_texts(notifier)[0]
        assert settings_db.get_daily_count(USER_ID, date(2024, 5, 1)) == 1
        assert settings_db.get(USER_ID).last_todo_message_id == 1000

    @pytest.mark.asyncio
    async def test_next_batch_replaces_previous(self, scheduler, todo_db, notifier, clock, quiet_summary):
        todo_db.add(USER_ID, "task", priority=5, due_time=NOW + timedelta(hours=1))

        await scheduler.check()
        clock.now = NOW + timedelta(minutes=15)
        await scheduler.check()

        assert notifier.send_message.await_count == 2
        notifier.delete_message.assert_awaited_once_with(USER_ID, 1000)

    @pytest.mark.asyncio
    async def test_daily_cap_stops_batches(self, scheduler, todo_db, settings_db, notifier, clock, quiet_summary):
        settings_db.update(dataclasses.replace(quiet_summary, max_daily_reminders=1))
        todo_db.add(USER_ID, "task", priority=5, due_time=NOW + timedelta(hours=1))

        await scheduler.check()
        clock.now = NOW + timedelta(minutes=30)
        await scheduler.check()

        assert notifier.send_message.await_count == 1

    @pytest.mark.asyncio
    async def test_quiet_hours(self, scheduler, todo_db, notifier, clock, quiet_summary):
        clock.now = datetime(2024, 5, 1, 23, 0)
        todo_db.add(USER_ID, "task", due_time=clock.now - timedelta(hours=1))

        await scheduler.check()

        notifier.send_message.assert_not_called()


# ---------------------------------------------------------------------------
# Daily summary
# ---------------------------------------------------------------------------


class TestDailySummaryPass:
    @pytest.mark.asyncio
    async def test_sent_once_per_day(self, scheduler, settings_db, event_db, notifier, clock):
        settings_db.get_or_create(USER_ID)
        start = NOW.replace(hour=18)
        event_db.add(USER_ID, "Dinner", dtstart=start, next_occurrence=start)

        await scheduler.check()
        clock.now = NOW + timedelta(hours=1)
        await scheduler.check()

        texts = _sent_texts(notifier)
        assert len(texts) == 1
        assert "Dinner" in texts[0]
        assert settings_db.get(USER_ID).last_daily_summary_date == date(2024, 5, 1)


# ---------------------------------------------------------------------------
# Pass isolation and loop
# ---------------------------------------------------------------------------


class TestPass:
    @pytest.mark.asyncio
    async def test_failing_step_does_not_stop_later_steps(self, scheduler, detector, reminder_db, notifier, quiet_summary):
        reminder_db.add(USER_ID, "still sent", remind_at=NOW)

        with patch.object(detector, "due_events", side_effect=RuntimeError("db locked")):
            with patch.object(detector, "todo_users", side_effect=RuntimeError("db locked")):
                await scheduler.check()

        assert notifier.send_message.await_count == 1
        assert scheduler.passes == 1


class TestLoop:
    @pytest.mark.asyncio
    async def test_startup_pass_then_stop(self, scheduler):
        with patch.object(scheduler, "check", new_callable=AsyncMock) as check:
            scheduler.start()
            assert scheduler.running
            await asyncio.sleep(0.05)
            await scheduler.stop()

        assert check.await_count == 1
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_triggers_coalesce(self, scheduler):
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_check():
            started.set()
            await release.wait()

        with patch.object(scheduler, "check", new_callable=AsyncMock, side_effect=slow_check) as check:
            scheduler.start()
            await started.wait()
            for _ in range(5):
                scheduler.trigger()
            release.set()
            await asyncio.sleep(0.05)
            await scheduler.stop()

        # the startup pass plus a single pass for the burst
        assert check.await_count == 2

    @pytest.mark.asyncio
    async def test_stop_during_startup_delay(self, detector, advancer, event_db, todo_db, notifier):
        loop = SchedulerLoop(
            detector, NotificationDispatcher(notifier), advancer, event_db, todo_db,
            startup_delay_seconds=30,
        )
        with patch.object(loop, "check", new_callable=AsyncMock) as check:
            loop.start()
            await asyncio.sleep(0)
            await asyncio.wait_for(loop.stop(), timeout=1)

        check.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scheduler):
        with patch.object(scheduler, "check", new_callable=AsyncMock):
            scheduler.start()
            task = scheduler._task
            scheduler.start()
            assert scheduler._task is task
            await scheduler.stop()
