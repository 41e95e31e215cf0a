"""
LifeLine Assistant — Notification Scheduler.

A single asyncio task that wakes once per interval (or sooner, when a
command handler calls ``trigger()``) and runs one checking pass:

    1. reminders        send everything due, re-nag after the cooldown
    2. events           notify inside the lead window, then roll elapsed
                        occurrences forward
    3. todos            one combined message per user, subject to quiet
                        hours, the daily cap and per-todo backoff
    4. daily summaries  once per user per local day

Passes run sequentially and never overlap. Triggers are coalesced: any
number of ``trigger()`` calls while a pass is pending or running produce
at most one extra pass.

The scheduler keeps no entity state between passes; everything is re-read
from the store. This module is provider-agnostic: it talks to the user
through the NotificationDispatcher, which depends on NotificationPort.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from src.core.advancer import OccurrenceAdvancer
from src.core.clock import local_now
from src.core.dispatcher import NotificationDispatcher
from src.core.due_detector import DueDetector
from src.data.db import EventDB, TodoDB

logger = logging.getLogger(__name__)


class SchedulerLoop:
    """Polling loop with a coalescing "check now" trigger."""

    def __init__(
        self,
        detector: DueDetector,
        dispatcher: NotificationDispatcher,
        advancer: OccurrenceAdvancer,
        events: EventDB,
        todos: TodoDB,
        interval_seconds: float = 60,
        startup_delay_seconds: float = 2,
        now_provider: Callable[[], datetime] = local_now,
    ) -> None:
        self._detector = detector
        self._dispatcher = dispatcher
        self._advancer = advancer
        self._events = events
        self._todos = todos
        self._interval = interval_seconds
        self._startup_delay = startup_delay_seconds
        self._now = now_provider

        self._wakeup = asyncio.Event()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.passes = 0

    # -- lifecycle ----------------------------------------------------------

    def trigger(self) -> None:
        """Request an immediate pass. Never blocks; bursts collapse into one."""
        self._wakeup.set()

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop.clear()
        self._task = asyncio.create_task(self.run(), name="notification-scheduler")
        logger.info(
            "Scheduler started (interval %ss, startup delay %ss)",
            self._interval, self._startup_delay,
        )

    async def stop(self) -> None:
        """Signal the loop to exit and wait for the in-flight pass to finish."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        """Idle/Checking loop; returns once stop is requested."""
        if await self._wait(self._startup_delay, wake_on_trigger=False):
            return

        while not self._stop.is_set():
            self._wakeup.clear()
            await self.check()
            if await self._wait(self._interval):
                return

    async def _wait(self, timeout: float, wake_on_trigger: bool = True) -> bool:
        """Sleep until timeout, trigger or stop. Returns True when stop was requested."""
        waiters = [asyncio.create_task(self._stop.wait())]
        if wake_on_trigger:
            waiters.append(asyncio.create_task(self._wakeup.wait()))

        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        return self._stop.is_set()

    # -- checking pass ------------------------------------------------------

    async def check(self) -> None:
        """Run one full pass over every entity kind."""
        now = self._now()
        logger.debug("Scheduler pass at %s", now)

        for name, step in (
            ("reminders", self.check_reminders),
            ("events", self.check_events),
            ("todos", self.check_todos),
            ("daily summaries", self.check_daily_summaries),
        ):
            try:
                await step(now)
            except Exception as exc:
                logger.error("Scheduler %s pass failed: %s", name, exc)

        self.passes += 1

    async def check_reminders(self, now: datetime) -> None:
        for reminder in self._detector.due_reminders(now):
            try:
                message_id = await self._dispatcher.send_reminder(reminder)
                self._advancer.mark_reminder_notified(reminder, message_id, now)
            except Exception as exc:
                logger.error("Failed to deliver reminder #%d: %s", reminder.id, exc)

    async def check_events(self, now: datetime) -> None:
        for event in self._detector.due_events(now):
            try:
                await self._dispatcher.send_event(event, now)
                self._advancer.mark_event_notified(event, now)
            except Exception as exc:
                logger.error("Failed to deliver event #%d: %s", event.id, exc)

        # Runs every pass, even when nothing was notified
        self._advancer.roll_forward_events(self._detector.elapsed_events(now), now)

    async def check_todos(self, now: datetime) -> None:
        for user_id in self._detector.todo_users():
            try:
                await self._check_user_todos(user_id, now)
            except Exception as exc:
                logger.error("Failed to process todos for user %d: %s", user_id, exc)

    async def _check_user_todos(self, user_id: int, now: datetime) -> None:
        result = self._detector.due_todos(user_id, now)
        if not result.due:
            return

        todos = [item.todo for item in result.due]
        message_id = await self._dispatcher.send_todo_batch(
            user_id, todos, result.user_settings.last_todo_message_id, now,
        )
        self._advancer.mark_todos_notified(user_id, [t.id for t in todos], message_id, now)

    async def check_daily_summaries(self, now: datetime) -> None:
        for user_settings in self._detector.due_daily_summaries(now):
            user_id = user_settings.user_id
            try:
                day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
                events = self._events.list_between(
                    user_id, day_start, day_start + timedelta(days=1),
                )
                todos = self._todos.list_for_user(user_id)
                await self._dispatcher.send_daily_summary(user_settings, events, todos, now)
                self._advancer.mark_daily_summary_sent(user_id, now)
            except Exception as exc:
                logger.error("Failed to send daily summary to user %d: %s", user_id, exc)
