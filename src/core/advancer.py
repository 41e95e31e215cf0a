"""
LifeLine Assistant — Occurrence Advancer.

Owns every state transition that follows a delivery or a user action.

Reminder lifecycle::

    Scheduled --send--> Notified --ack--> Acknowledged --+--> Scheduled (next occurrence)
        ^                  |                             |
        +-- re-sent every cooldown until acknowledged    +--> Disabled (one-shot / exhausted)

Events are occurrence-indexed: once the materialised ``next_occurrence``
has elapsed it is rolled to the following occurrence (or cleared for a
one-shot event), and the notified marker resets with it.

Todos only ever move ``last_notified_at`` forward, one batch at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from src.core.recurrence import (
    RecurrenceError,
    is_recurring,
    next_occurrence,
    next_occurrence_strict,
)
from src.data.db import EventDB, ReminderDB, TodoDB, UserSettingsDB
from src.data.models import Event, Reminder

logger = logging.getLogger(__name__)


@dataclass
class AckOutcome:
    """What acknowledging a reminder did to it."""

    reminder: Reminder
    next_fire: datetime | None = None

    @property
    def disabled(self) -> bool:
        return self.next_fire is None


# ---------------------------------------------------------------------------
# Creation helpers
# ---------------------------------------------------------------------------


def first_reminder_fire(rule: str, dtstart: datetime, now: datetime) -> datetime | None:
    """Initial ``remind_at`` for a new reminder.

    A one-shot reminder fires at its anchor, even when that is already past.
    A recurring one fires at its first occurrence no earlier than both the
    anchor and ``now``; None if the rule yields nothing or is invalid.
    """
    if not is_recurring(rule):
        return dtstart
    try:
        return next_occurrence(rule, dtstart, max(dtstart, now))
    except RecurrenceError as exc:
        logger.warning("Invalid recurrence rule %r: %s", rule, exc)
        return None


def first_event_occurrence(rule: str, dtstart: datetime, now: datetime) -> datetime | None:
    """Initial ``next_occurrence`` for a new event; None for a past one-shot event."""
    if not is_recurring(rule):
        return dtstart if dtstart >= now else None
    try:
        return next_occurrence(rule, dtstart, max(dtstart, now))
    except RecurrenceError as exc:
        logger.warning("Invalid recurrence rule %r: %s", rule, exc)
        return None


# ---------------------------------------------------------------------------
# Advancer
# ---------------------------------------------------------------------------


class OccurrenceAdvancer:
    """Persists post-delivery and post-acknowledgement transitions."""

    def __init__(
        self,
        reminders: ReminderDB,
        events: EventDB,
        todos: TodoDB,
        user_settings: UserSettingsDB,
    ) -> None:
        self._reminders = reminders
        self._events = events
        self._todos = todos
        self._user_settings = user_settings

    # -- reminders ----------------------------------------------------------

    def mark_reminder_notified(self, reminder: Reminder, message_id: int | None, now: datetime) -> None:
        """Scheduled -> Notified. ``remind_at`` stays put, so it nags until acknowledged."""
        self._reminders.set_notified(reminder.id, now, message_id)

    def acknowledge_reminder(self, reminder_id: int, user_id: int, now: datetime) -> AckOutcome | None:
        """Notified -> Acknowledged -> Scheduled | Disabled.

        Returns None when the reminder does not exist or belongs to someone else.
        """
        reminder = self._reminders.get(reminder_id, user_id)
        if reminder is None:
            logger.warning("User %d tried to acknowledge unknown reminder #%d", user_id, reminder_id)
            return None

        self._reminders.set_acknowledged(reminder.id, now)

        next_fire = None
        if reminder.is_recurring() and reminder.dtstart is not None:
            try:
                next_fire = next_occurrence_strict(reminder.recurrence_rule, reminder.dtstart, now)
            except RecurrenceError as exc:
                logger.warning("Reminder #%d has an invalid rule: %s", reminder.id, exc)

        if next_fire is not None:
            self._reminders.reschedule(reminder.id, next_fire)
            logger.info("Reminder #%d acknowledged, next at %s", reminder.id, next_fire)
        else:
            self._reminders.set_enabled(reminder.id, user_id, False)
            logger.info("Reminder #%d acknowledged and disabled", reminder.id)

        return AckOutcome(reminder=self._reminders.get(reminder.id, user_id), next_fire=next_fire)

    def disable_reminder(self, reminder_id: int, user_id: int) -> bool:
        return self._reminders.set_enabled(reminder_id, user_id, False)

    # -- events -------------------------------------------------------------

    def mark_event_notified(self, event: Event, now: datetime) -> None:
        self._events.set_notified(event.id, now)

    def advance_event(self, event: Event, now: datetime) -> datetime | None:
        """Roll an elapsed event to its next occurrence, or clear it if there is none."""
        upcoming = None
        if event.is_recurring() and event.dtstart is not None:
            try:
                upcoming = next_occurrence(event.recurrence_rule, event.dtstart, now)
            except RecurrenceError as exc:
                logger.warning("Event #%d has an invalid rule: %s", event.id, exc)

        self._events.set_next_occurrence(event.id, upcoming)
        if upcoming is None:
            logger.info("Event #%d has no further occurrences", event.id)
        else:
            logger.info("Event #%d rolled forward to %s", event.id, upcoming)
        return upcoming

    def roll_forward_events(self, events: list[Event], now: datetime) -> int:
        """Advance each elapsed event independently. Returns how many advanced."""
        advanced = 0
        for event in events:
            try:
                self.advance_event(event, now)
                advanced += 1
            except Exception as exc:
                logger.error("Failed to advance event #%d: %s", event.id, exc)
        return advanced

    # -- todos and summaries ------------------------------------------------

    def mark_todos_notified(
        self, user_id: int, todo_ids: list[int], message_id: int | None, now: datetime,
    ) -> None:
        """Record one combined delivery: every included todo, the handle, one cap slot."""
        self._todos.set_last_notified_many(todo_ids, now)
        user_settings = self._user_settings.get_or_create(user_id)
        self._user_settings.set_last_todo_message_id(user_id, message_id)
        self._user_settings.increment_daily_count(user_id, user_settings.local_date(now))

    def mark_daily_summary_sent(self, user_id: int, now: datetime) -> None:
        user_settings = self._user_settings.get_or_create(user_id)
        self._user_settings.set_last_daily_summary_date(user_id, user_settings.local_date(now))
