"""
LifeLine Assistant — Due Detection.

One query per entity kind, answering "what should be notified now?".
Reminders and events are filtered in SQL; todos go through the backoff
policy in Python because their interval depends on zone and priority.

Storage errors propagate; the scheduler loop decides how to isolate them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.core.todo_backoff import should_notify
from src.data.db import EventDB, ReminderDB, TodoDB, UserSettingsDB
from src.data.models import Event, Reminder, Todo, UserSettings

logger = logging.getLogger(__name__)


@dataclass
class DueTodo:
    """A todo selected for this cycle's batch, with the zone that selected it."""

    todo: Todo
    zone: str


@dataclass
class TodoCheck:
    """Result of evaluating one user's todos.

    ``skipped`` names why nothing was evaluated ("quiet_hours" or
    "daily_cap"); it is None when the todos were checked.
    """

    user_settings: UserSettings
    due: list[DueTodo] = field(default_factory=list)
    skipped: str | None = None
    sent_today: int = 0


class DueDetector:
    """Answers the per-entity "is it due?" queries against the store."""

    def __init__(
        self,
        reminders: ReminderDB,
        events: EventDB,
        todos: TodoDB,
        user_settings: UserSettingsDB,
        reminder_cooldown: timedelta = timedelta(seconds=60),
    ) -> None:
        self._reminders = reminders
        self._events = events
        self._todos = todos
        self._user_settings = user_settings
        self._reminder_cooldown = reminder_cooldown

    def due_reminders(self, now: datetime) -> list[Reminder]:
        """Reminders past their fire time, unacknowledged and out of cooldown."""
        return self._reminders.list_due(now, now - self._reminder_cooldown)

    def due_events(self, now: datetime) -> list[Event]:
        """Events inside their lead window whose current occurrence is un-notified."""
        return self._events.list_pending_notifications(now)

    def elapsed_events(self, now: datetime) -> list[Event]:
        """Events whose current occurrence is over and needs rolling forward."""
        return self._events.list_elapsed(now)

    def todo_users(self) -> list[int]:
        return self._user_settings.list_todo_reminder_users()

    def due_todos(self, user_id: int, now: datetime) -> TodoCheck:
        """Select the todos that should go into this user's batch now."""
        user_settings = self._user_settings.get_or_create(user_id)

        if user_settings.is_quiet_hours(now):
            logger.debug("User %d is in quiet hours, skipping todos", user_id)
            return TodoCheck(user_settings=user_settings, skipped="quiet_hours")

        sent_today = self._user_settings.get_daily_count(user_id, user_settings.local_date(now))
        if user_settings.is_over_daily_cap(sent_today):
            logger.debug(
                "User %d reached daily cap (%d/%d), skipping todos",
                user_id, sent_today, user_settings.max_daily_reminders,
            )
            return TodoCheck(
                user_settings=user_settings, skipped="daily_cap", sent_today=sent_today,
            )

        due: list[DueTodo] = []
        for todo in self._todos.list_for_notification(user_id, now):
            eligible, zone = should_notify(
                todo.due_time,
                todo.last_notified_at,
                todo.priority,
                user_settings.reminder_intervals,
                now,
            )
            if eligible and zone is not None:
                due.append(DueTodo(todo=todo, zone=zone))

        return TodoCheck(user_settings=user_settings, due=due, sent_today=sent_today)

    def due_daily_summaries(self, now: datetime) -> list[UserSettings]:
        """Users whose daily summary time has arrived and who have not had one today."""
        return [
            s for s in self._user_settings.list_daily_summary_users()
            if s.should_send_daily_summary(now)
        ]
