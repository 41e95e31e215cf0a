"""
LifeLine Assistant — Notification text.

Builds the Telegram (legacy Markdown) bodies the scheduler sends. Pure
functions of their inputs; ``now`` is always passed in.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from src.core.recurrence import describe_rule
from src.data.models import Event, Reminder, Todo

SUMMARY_TODO_LIMIT = 10

_MARKDOWN_SPECIALS = ("\\", "_", "*", "`", "[")


def escape_md(text: str) -> str:
    """Escape user-supplied text for Telegram's legacy Markdown mode."""
    for ch in _MARKDOWN_SPECIALS:
        text = text.replace(ch, "\\" + ch)
    return text


# ---------------------------------------------------------------------------
# Relative times
# ---------------------------------------------------------------------------


def format_duration(delta: timedelta) -> str:
    """'less than a minute', '25 min', '2 h' or '2 h 15 min'."""
    minutes = int(delta.total_seconds() // 60)
    if minutes < 1:
        return "less than a minute"
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    if mins == 0:
        return f"{hours} h"
    return f"{hours} h {mins} min"


def format_due(due_time: datetime | None, now: datetime) -> str:
    """Describe a due time relative to ``now``."""
    if due_time is None:
        return ""

    diff = due_time - now
    if diff < timedelta(0):
        overdue = -diff
        if overdue < timedelta(hours=1):
            return f"overdue by {int(overdue.total_seconds() // 60)} min"
        if overdue < timedelta(days=1):
            return f"overdue by {int(overdue.total_seconds() // 3600)} h"
        return f"overdue by {overdue.days} d"

    if diff < timedelta(hours=1):
        return f"{int(diff.total_seconds() // 60)} min left"
    if diff < timedelta(days=1):
        hours, rem = divmod(int(diff.total_seconds()), 3600)
        mins = rem // 60
        if mins:
            return f"{hours} h {mins} min left"
        return f"{hours} h left"
    if diff < timedelta(days=2):
        return "tomorrow " + due_time.strftime("%H:%M")
    return due_time.strftime("%m/%d %H:%M")


def greeting(hour: int) -> str:
    if 5 <= hour < 12:
        return "Good morning"
    if 12 <= hour < 18:
        return "Good afternoon"
    return "Good evening"


# ---------------------------------------------------------------------------
# Entity notifications
# ---------------------------------------------------------------------------


def reminder_text(reminder: Reminder) -> str:
    text = "⏰ *Reminder*\n\n" + escape_md(reminder.message)
    if reminder.description:
        text += "\n\n" + escape_md(reminder.description)
    if reminder.is_recurring():
        text += "\n\n🔄 " + describe_rule(reminder.recurrence_rule)
    return text


def event_text(event: Event, now: datetime) -> str:
    text = "📅 *Upcoming event*\n\n"
    text += f"*{escape_md(event.title)}*\n"
    if event.next_occurrence is not None:
        text += "⏰ " + event.next_occurrence.strftime("%H:%M")
        until = event.next_occurrence - now
        if until > timedelta(0):
            text += f" (in about {format_duration(until)})"
    if event.duration > 0:
        text += f"\n⏱ {event.duration} min"
    if event.is_recurring():
        text += "\n🔄 " + describe_rule(event.recurrence_rule)
    if event.description:
        text += "\n\n" + escape_md(event.description)
    return text


def todo_batch_text(todos: list[Todo], now: datetime) -> str:
    """One message for all of a user's due todos."""
    if len(todos) == 1:
        todo = todos[0]
        text = "📋 *Todo reminder*\n\n"
        text += f"*{escape_md(todo.title)}*\n"
        text += "⏰ " + format_due(todo.due_time, now)
        if todo.priority > 0:
            text += f" | ⭐{todo.priority}"
        if todo.description:
            text += "\n\n" + escape_md(todo.description)
        return text

    lines = [f"📋 *Todo reminder* ({len(todos)} items)", ""]
    for i, todo in enumerate(todos, 1):
        line = f"{i}. *{escape_md(todo.title)}* - {format_due(todo.due_time, now)}"
        if todo.priority > 0:
            line += f" ⭐{todo.priority}"
        lines.append(line)
    return "\n".join(lines)


def daily_summary_text(
    events: list[Event], todos: list[Todo], now: datetime, local_now: datetime,
) -> str:
    """Morning overview: today's events and up to ten open todos.

    ``now`` is the deployment-local time the stored values compare
    against; ``local_now`` is the same instant on the user's clock.
    """
    lines = [
        f"☀️ *{greeting(local_now.hour)}*",
        "",
        "📅 " + local_now.strftime("%Y/%m/%d (%a)"),
        "",
        "*Today's schedule*",
    ]
    if not events:
        lines.append("• Nothing scheduled today")
    for event in events:
        start = event.next_occurrence or event.dtstart
        line = f"• {start.strftime('%H:%M') if start else ''} {escape_md(event.title)}"
        if event.duration > 0:
            line += f" ({event.duration} min)"
        lines.append(line)

    lines += ["", "*Todos*"]
    if not todos:
        lines.append("• No open todos")
    for todo in todos[:SUMMARY_TODO_LIMIT]:
        line = "• " + escape_md(todo.title)
        if todo.priority >= 4:
            line += " ⭐"
        if todo.due_time is not None:
            if todo.due_time < now:
                line += " (overdue)"
            elif todo.due_time < now + timedelta(days=1):
                line += " (due today)"
            elif todo.due_time < now + timedelta(days=2):
                line += " (due tomorrow)"
        lines.append(line)
    if len(todos) > SUMMARY_TODO_LIMIT:
        lines.append(f"• ...and {len(todos) - SUMMARY_TODO_LIMIT} more")

    lines += ["", "Have a great day! 💪"]
    return "\n".join(lines)
