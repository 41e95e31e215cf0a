"""
LifeLine Assistant — Notification Dispatcher.

Renders due entities and hands them to the NotificationPort. Reminder and todo
sends return the transport's message handle so the caller can persist it
and retract that message before the next delivery of the same item.

Retraction is best effort. Send failures propagate; the scheduler logs
them and carries on with the next item.
"""

from __future__ import annotations

import logging
from datetime import datetime

from src.core import formatting
from src.data.models import Event, Reminder, Todo, UserSettings
from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

ACK_BUTTON_LABEL = "✅ Got it"
ACK_CALLBACK_PREFIX = "remind_ack:"


class NotificationDispatcher:
    """Formats and delivers scheduler notifications through a NotificationPort."""

    def __init__(self, notifier: NotificationPort) -> None:
        self._notifier = notifier

    async def retract(self, user_id: int, message_id: int | None) -> None:
        """Delete a previous delivery, ignoring failures (it may already be gone)."""
        if message_id is None:
            return
        try:
            await self._notifier.delete_message(user_id, message_id)
        except Exception as exc:
            logger.warning(
                "Could not retract message %d for user %d: %s", message_id, user_id, exc,
            )

    async def send_reminder(self, reminder: Reminder) -> int:
        """Replace the reminder's previous message with a fresh one carrying an ack button."""
        await self.retract(reminder.user_id, reminder.last_message_id)
        message_id = await self._notifier.send_message(
            reminder.user_id,
            formatting.reminder_text(reminder),
            buttons=[(ACK_BUTTON_LABEL, f"{ACK_CALLBACK_PREFIX}{reminder.id}")],
        )
        logger.info("Sent reminder #%d to user %d", reminder.id, reminder.user_id)
        return message_id

    async def send_event(self, event: Event, now: datetime) -> None:
        """Heads-up for an upcoming occurrence. Never retracted, so the handle is not kept."""
        await self._notifier.send_message(event.user_id, formatting.event_text(event, now))
        logger.info("Sent event #%d notification to user %d", event.id, event.user_id)

    async def send_todo_batch(
        self,
        user_id: int,
        todos: list[Todo],
        previous_message_id: int | None,
        now: datetime,
    ) -> int:
        """Replace the user's previous combined todo message with a new one."""
        await self.retract(user_id, previous_message_id)
        message_id = await self._notifier.send_message(
            user_id, formatting.todo_batch_text(todos, now),
        )
        logger.info("Sent %d todo reminder(s) to user %d", len(todos), user_id)
        return message_id

    async def send_daily_summary(
        self,
        user_settings: UserSettings,
        events: list[Event],
        todos: list[Todo],
        now: datetime,
    ) -> None:
        text = formatting.daily_summary_text(
            events, todos, now, user_settings.local_time(now),
        )
        await self._notifier.send_message(user_settings.user_id, text)
        logger.info("Sent daily summary to user %d", user_settings.user_id)
