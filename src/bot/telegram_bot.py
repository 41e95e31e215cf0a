"""
LifeLine Assistant — Telegram Bot.

Telegram is the only user interface. Reminders, events and todos are
created by command or by free text (parsed by the LLM and confirmed with
a button tap); the notification scheduler runs inside the same
Application for its whole lifetime.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import datetime, timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.config import settings
from src.core.advancer import first_event_occurrence, first_reminder_fire
from src.core.clock import local_now
from src.core.formatting import escape_md, format_due
from src.core.recurrence import build_rule, describe_rule
from src.data.models import ZONES, parse_hhmm

if TYPE_CHECKING:
    from src.core.parser import ParserResponse
    from src.data.models import Event, Reminder, Todo, UserSettings
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

CONFIRM_SESSION = "confirm_items"

_RECURRENCE_WORDS = {
    "daily": lambda: build_rule("DAILY"),
    "weekdays": lambda: build_rule("WEEKLY", by_day=["MO", "TU", "WE", "TH", "FR"]),
    "weekly": lambda: build_rule("WEEKLY"),
}

_TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_PRIORITY_RE = re.compile(r"(?:^|\s)!([1-5])(?=\s|$)")
_DUE_RE = re.compile(r"(?:^|\s)@(\d{4}-\d{2}-\d{2})(?:\s+(\d{1,2}:\d{2}))?(?=\s|$)")


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from unauthorized users.

    Strangers get no reply at all, not even an error.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _at_time(now: datetime, hhmm: str, roll_if_past: bool) -> datetime:
    """Today at HH:MM; tomorrow instead when that has passed and ``roll_if_past``."""
    when = datetime.combine(now.date(), parse_hhmm(hhmm))
    if roll_if_past and when <= now:
        when += timedelta(days=1)
    return when


def _parse_remind_args(args: list[str], now: datetime) -> tuple[datetime, str, str] | None:
    """``HH:MM [daily|weekdays|weekly] <text>`` -> (dtstart, rule, text)."""
    if len(args) < 2 or not _TIME_RE.match(args[0]):
        return None

    rest = args[1:]
    rule = ""
    if rest[0].lower() in _RECURRENCE_WORDS:
        rule = _RECURRENCE_WORDS[rest[0].lower()]()
        rest = rest[1:]

    text = " ".join(rest).strip()
    if not text:
        return None
    try:
        dtstart = _at_time(now, args[0], roll_if_past=not rule)
    except ValueError:
        return None
    return dtstart, rule, text


def _parse_event_args(args: list[str], now: datetime) -> tuple[str, datetime, str] | None:
    """``<title> <YYYY-MM-DD HH:MM | HH:MM> [daily|weekly]`` -> (title, dtstart, rule)."""
    tokens = list(args)
    rule = ""
    if tokens and tokens[-1].lower() in _RECURRENCE_WORDS:
        rule = _RECURRENCE_WORDS[tokens.pop().lower()]()

    if len(tokens) < 2 or not _TIME_RE.match(tokens[-1]):
        return None

    try:
        if len(tokens) >= 3 and _DATE_RE.match(tokens[-2]):
            day = datetime.strptime(tokens[-2], "%Y-%m-%d").date()
            dtstart = datetime.combine(day, parse_hhmm(tokens[-1]))
            title_tokens = tokens[:-2]
        else:
            dtstart = _at_time(now, tokens[-1], roll_if_past=not rule)
            title_tokens = tokens[:-1]
    except ValueError:
        return None

    title = " ".join(title_tokens).strip()
    if not title:
        return None
    return title, dtstart, rule


def _parse_todo_args(text: str) -> tuple[str, int, datetime | None] | None:
    """``<title> [!1-5] [@YYYY-MM-DD [HH:MM]]`` -> (title, priority, due)."""
    priority = 0
    due = None

    match = _PRIORITY_RE.search(text)
    if match:
        priority = int(match.group(1))
        text = text[:match.start()] + text[match.end():]

    match = _DUE_RE.search(text)
    if match:
        try:
            day = datetime.strptime(match.group(1), "%Y-%m-%d").date()
            due = datetime.combine(day, parse_hhmm(match.group(2) or "23:59"))
        except ValueError:
            return None
        text = text[:match.start()] + text[match.end():]

    title = " ".join(text.split())
    if not title:
        return None
    return title, priority, due


def _parse_on_off(value: str) -> bool | None:
    return {"on": True, "off": False}.get(value.lower())


# ---------------------------------------------------------------------------
# Shared creation helpers (used by commands and by LLM confirmation)
# ---------------------------------------------------------------------------


def _trigger_scheduler(context: ContextTypes.DEFAULT_TYPE) -> None:
    scheduler = context.bot_data.get("scheduler")
    if scheduler is not None:
        scheduler.trigger()


def _create_reminder(
    context: ContextTypes.DEFAULT_TYPE,
    user_id: int,
    message: str,
    dtstart: datetime,
    rule: str = "",
    description: str = "",
) -> Reminder:
    remind_at = first_reminder_fire(rule, dtstart, local_now())
    return context.bot_data["reminders"].add(
        user_id=user_id,
        message=message,
        remind_at=remind_at,
        dtstart=dtstart,
        recurrence_rule=rule,
        description=description,
        enabled=remind_at is not None,
    )


def _create_event(
    context: ContextTypes.DEFAULT_TYPE,
    user_id: int,
    title: str,
    dtstart: datetime,
    rule: str = "",
    duration: int = 60,
    notification_minutes: int = 30,
    description: str = "",
) -> Event:
    return context.bot_data["events"].add(
        user_id=user_id,
        title=title,
        dtstart=dtstart,
        next_occurrence=first_event_occurrence(rule, dtstart, local_now()),
        duration=duration,
        notification_minutes=notification_minutes,
        recurrence_rule=rule,
        description=description,
    )


def _create_parsed(context: ContextTypes.DEFAULT_TYPE, user_id: int, item: ParserResponse) -> str:
    """Persist one confirmed LLM item and return a one-line summary."""
    if item.intent == "reminder":
        reminder = _create_reminder(
            context, user_id, item.message, item.dtstart, item.recurrence_rule, item.description,
        )
        return f"⏰ Reminder `{reminder.id}`: {escape_md(reminder.message)}"
    if item.intent == "event":
        event = _create_event(
            context, user_id, item.title, item.dtstart, item.recurrence_rule,
            item.duration_minutes, item.notification_minutes, item.description,
        )
        return f"📅 Event `{event.id}`: {escape_md(event.title)}"
    todo = context.bot_data["todos"].add(
        user_id=user_id, title=item.title, priority=item.priority,
        due_time=item.due, description=item.description,
    )
    return f"📋 Todo `{todo.id}`: {escape_md(todo.title)}"


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _fmt_when(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "—"


def _reminder_line(reminder: Reminder) -> str:
    line = f"`{reminder.id}` {_fmt_when(reminder.remind_at)} — {escape_md(reminder.message)}"
    if reminder.is_recurring():
        line += f" (🔄 {describe_rule(reminder.recurrence_rule)})"
    if not reminder.enabled:
        line += " _(done)_"
    return line


def _event_line(event: Event) -> str:
    line = f"`{event.id}` {_fmt_when(event.next_occurrence)} — {escape_md(event.title)}"
    if event.is_recurring():
        line += f" (🔄 {describe_rule(event.recurrence_rule)})"
    if event.next_occurrence is None:
        line += " _(past)_"
    return line


def _todo_line(todo: Todo, now: datetime) -> str:
    line = f"`{todo.id}` {escape_md(todo.title)}"
    if todo.priority:
        line += f" ⭐{todo.priority}"
    if todo.due_time:
        line += f" — {format_due(todo.due_time, now)}"
    return line


def _describe_parsed(item: ParserResponse) -> str:
    rule = f" (🔄 {describe_rule(item.recurrence_rule)})" if getattr(item, "recurrence_rule", "") else ""
    if item.intent == "reminder":
        return f"⏰ *Reminder* {escape_md(item.message)} at {_fmt_when(item.dtstart)}{rule}"
    if item.intent == "event":
        return (
            f"📅 *Event* {escape_md(item.title)} at {_fmt_when(item.dtstart)}, "
            f"{item.duration_minutes} min{rule}"
        )
    line = f"📋 *Todo* {escape_md(item.title)}"
    if item.priority:
        line += f" ⭐{item.priority}"
    if item.due:
        line += f" due {_fmt_when(item.due)}"
    return line


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    context.bot_data["user_settings"].get_or_create(update.effective_user.id)
    await update.message.reply_text(
        "Welcome to *LifeLine Assistant*!\n\n"
        "I keep track of your reminders, events and todos and nudge you at the right time:\n"
        "• Just tell me what you need, e.g. _remind me to stretch every weekday at 10_\n"
        "• Or use /remind, /event and /todo directly\n"
        "• Tune quiet hours and nag intervals with /settings\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Reminders*\n"
        "/remind HH:MM \\[daily|weekdays|weekly] <text>\n"
        "/reminders — list, /delreminder <id>\n\n"
        "*Events*\n"
        "/event <title> <YYYY-MM-DD HH:MM | HH:MM> \\[daily|weekly]\n"
        "/events — list, /delevent <id>\n\n"
        "*Todos*\n"
        "/todo <title> \\[!1-5] \\[@YYYY-MM-DD HH:MM]\n"
        "/todos — list, /done <id>\n\n"
        "*Settings*\n"
        "/settings — show current settings\n"
        "/quiet HH:MM HH:MM — quiet hours\n"
        "/maxdaily <n> — todo messages per day (0 = unlimited)\n"
        "/interval <overdue|urgent|soon|normal> <minutes>\n"
        "/summary on|off|HH:MM — daily summary\n"
        "/todoreminders on|off",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_remind(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remind HH:MM [daily|weekdays|weekly] <text>."""
    parsed = _parse_remind_args(context.args or [], local_now())
    if parsed is None:
        await update.message.reply_text(
            "Usage: /remind HH:MM [daily|weekdays|weekly] <text>\n"
            "Example: /remind 09:30 weekdays Stand-up"
        )
        return

    dtstart, rule, text = parsed
    try:
        reminder = _create_reminder(context, update.effective_user.id, text, dtstart, rule)
    except Exception as exc:
        logger.error("/remind error: %s", exc)
        await update.message.reply_text("Couldn't save the reminder. Please try again.")
        return

    _trigger_scheduler(context)
    msg = f"✅ Reminder `{reminder.id}` set for {_fmt_when(reminder.remind_at)}"
    if rule:
        msg += f"\n🔄 {describe_rule(rule)}"
    await update.message.reply_text(msg, parse_mode="Markdown")


@authorized_only
async def cmd_reminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reminders — list the user's reminders."""
    try:
        reminders = context.bot_data["reminders"].list_for_user(update.effective_user.id)
    except Exception as exc:
        logger.error("/reminders error: %s", exc)
        await update.message.reply_text("Couldn't load reminders. Please try again.")
        return

    if not reminders:
        await update.message.reply_text("No reminders yet. Add one with /remind.")
        return

    lines = ["*Your reminders:*\n"] + [_reminder_line(r) for r in reminders]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_delreminder(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delreminder <id>."""
    args = context.args
    if not args or not args[0].isdigit():
        await update.message.reply_text("Usage: /delreminder <id>\nUse /reminders to see IDs.")
        return

    reminder_id = int(args[0])
    if context.bot_data["reminders"].delete(reminder_id, update.effective_user.id):
        await update.message.reply_text(f"🗑 Reminder {reminder_id} deleted.")
    else:
        await update.message.reply_text(f"Reminder {reminder_id} not found.")


@authorized_only
async def cmd_event(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /event <title> <YYYY-MM-DD HH:MM | HH:MM> [daily|weekly]."""
    parsed = _parse_event_args(context.args or [], local_now())
    if parsed is None:
        await update.message.reply_text(
            "Usage: /event <title> <YYYY-MM-DD HH:MM | HH:MM> [daily|weekly]\n"
            "Example: /event Team sync 2025-03-10 15:00 weekly"
        )
        return

    title, dtstart, rule = parsed
    try:
        event = _create_event(context, update.effective_user.id, title, dtstart, rule)
    except Exception as exc:
        logger.error("/event error: %s", exc)
        await update.message.reply_text("Couldn't save the event. Please try again.")
        return

    _trigger_scheduler(context)
    if event.next_occurrence is None:
        msg = f"Event `{event.id}` saved, but {_fmt_when(dtstart)} is already in the past."
    else:
        msg = f"✅ Event `{event.id}` *{escape_md(title)}* at {_fmt_when(event.next_occurrence)}"
    if rule:
        msg += f"\n🔄 {describe_rule(rule)}"
    await update.message.reply_text(msg, parse_mode="Markdown")


@authorized_only
async def cmd_events(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /events — list the user's events."""
    try:
        events = context.bot_data["events"].list_for_user(update.effective_user.id)
    except Exception as exc:
        logger.error("/events error: %s", exc)
        await update.message.reply_text("Couldn't load events. Please try again.")
        return

    if not events:
        await update.message.reply_text("No events yet. Add one with /event.")
        return

    lines = ["*Your events:*\n"] + [_event_line(e) for e in events]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_delevent(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delevent <id>."""
    args = context.args
    if not args or not args[0].isdigit():
        await update.message.reply_text("Usage: /delevent <id>\nUse /events to see IDs.")
        return

    event_id = int(args[0])
    if context.bot_data["events"].delete(event_id, update.effective_user.id):
        await update.message.reply_text(f"🗑 Event {event_id} deleted.")
    else:
        await update.message.reply_text(f"Event {event_id} not found.")


@authorized_only
async def cmd_todo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /todo <title> [!1-5] [@YYYY-MM-DD HH:MM]."""
    parsed = _parse_todo_args(" ".join(context.args or []))
    if parsed is None:
        await update.message.reply_text(
            "Usage: /todo <title> [!1-5] [@YYYY-MM-DD HH:MM]\n"
            "Example: /todo File taxes !4 @2025-04-30 18:00"
        )
        return

    title, priority, due = parsed
    try:
        todo = context.bot_data["todos"].add(
            user_id=update.effective_user.id, title=title, priority=priority, due_time=due,
        )
    except Exception as exc:
        logger.error("/todo error: %s", exc)
        await update.message.reply_text("Couldn't save the todo. Please try again.")
        return

    _trigger_scheduler(context)
    msg = f"✅ Todo `{todo.id}` added: {escape_md(todo.title)}"
    if due:
        msg += f"\n⏰ due {_fmt_when(due)}"
    await update.message.reply_text(msg, parse_mode="Markdown")


@authorized_only
async def cmd_todos(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /todos — list open todos."""
    try:
        todos = context.bot_data["todos"].list_for_user(update.effective_user.id)
    except Exception as exc:
        logger.error("/todos error: %s", exc)
        await update.message.reply_text("Couldn't load todos. Please try again.")
        return

    if not todos:
        await update.message.reply_text("Nothing to do. 🎉")
        return

    now = local_now()
    lines = ["*Open todos:*\n"] + [_todo_line(t, now) for t in todos]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <id> — complete a todo."""
    args = context.args
    if not args or not args[0].isdigit():
        await update.message.reply_text("Usage: /done <id>\nUse /todos to see IDs.")
        return

    todo_id = int(args[0])
    if context.bot_data["todos"].complete(todo_id, update.effective_user.id, local_now()):
        await update.message.reply_text(f"✅ Todo {todo_id} done.")
    else:
        await update.message.reply_text(f"Todo {todo_id} not found or already done.")


# ---------------------------------------------------------------------------
# Settings commands
# ---------------------------------------------------------------------------


def _settings_text(s: UserSettings) -> str:
    intervals = s.reminder_intervals
    return "\n".join([
        "*Notification settings*\n",
        f"Quiet hours: {s.quiet_start}–{s.quiet_end}",
        f"Max todo messages per day: {s.max_daily_reminders or 'unlimited'}",
        f"Todo reminders: {'on' if s.todo_reminders_enabled else 'off'}",
        f"Daily summary: {s.daily_summary_time if s.daily_summary_enabled else 'off'}",
        f"Time zone: {s.timezone}",
        "",
        "*Todo intervals (minutes)*",
        f"overdue {intervals.overdue} · urgent {intervals.urgent} · "
        f"soon {intervals.soon} · normal {intervals.normal}",
    ])


async def _save_settings(update: Update, context: ContextTypes.DEFAULT_TYPE, **changes: Any) -> None:
    db = context.bot_data["user_settings"]
    current = db.get_or_create(update.effective_user.id)
    updated = dataclasses.replace(current, **changes)
    db.update(updated)
    _trigger_scheduler(context)
    await update.message.reply_text("✅ Saved.\n\n" + _settings_text(updated), parse_mode="Markdown")


@authorized_only
async def cmd_settings(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /settings — show the user's notification settings."""
    s = context.bot_data["user_settings"].get_or_create(update.effective_user.id)
    await update.message.reply_text(_settings_text(s), parse_mode="Markdown")


@authorized_only
async def cmd_quiet(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /quiet HH:MM HH:MM."""
    args = context.args or []
    try:
        if len(args) != 2:
            raise ValueError("expected two times")
        start, end = (parse_hhmm(a).strftime("%H:%M") for a in args)
    except ValueError:
        await update.message.reply_text("Usage: /quiet HH:MM HH:MM (same value twice disables)")
        return
    await _save_settings(update, context, quiet_start=start, quiet_end=end)


@authorized_only
async def cmd_maxdaily(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /maxdaily N."""
    args = context.args or []
    if len(args) != 1 or not args[0].isdigit():
        await update.message.reply_text("Usage: /maxdaily <n> (0 = unlimited)")
        return
    await _save_settings(update, context, max_daily_reminders=int(args[0]))


@authorized_only
async def cmd_interval(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /interval <zone> <minutes>."""
    args = context.args or []
    if len(args) != 2 or args[0].lower() not in ZONES or not args[1].isdigit():
        await update.message.reply_text(
            "Usage: /interval <overdue|urgent|soon|normal> <minutes> (0 = never)"
        )
        return

    db = context.bot_data["user_settings"]
    current = db.get_or_create(update.effective_user.id)
    intervals = dataclasses.replace(current.reminder_intervals, **{args[0].lower(): int(args[1])})
    await _save_settings(update, context, reminder_intervals=intervals)


@authorized_only
async def cmd_summary(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /summary on|off|HH:MM."""
    args = context.args or []
    value = args[0] if len(args) == 1 else ""

    switch = _parse_on_off(value)
    if switch is not None:
        await _save_settings(update, context, daily_summary_enabled=switch)
        return
    try:
        at = parse_hhmm(value).strftime("%H:%M")
    except ValueError:
        await update.message.reply_text("Usage: /summary on|off|HH:MM")
        return
    await _save_settings(update, context, daily_summary_enabled=True, daily_summary_time=at)


@authorized_only
async def cmd_todoreminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /todoreminders on|off."""
    args = context.args or []
    switch = _parse_on_off(args[0]) if len(args) == 1 else None
    if switch is None:
        await update.message.reply_text("Usage: /todoreminders on|off")
        return
    await _save_settings(update, context, todo_reminders_enabled=switch)


# ---------------------------------------------------------------------------
# Callback handlers
# ---------------------------------------------------------------------------


async def _handle_remind_ack_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the "Got it" button under a reminder notification."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    reminder_id = int(query.data.split(":")[1])
    try:
        outcome = context.bot_data["advancer"].acknowledge_reminder(
            reminder_id, user.id, local_now(),
        )
    except Exception as exc:
        logger.error("remind_ack callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    if outcome is None:
        await query.edit_message_text("Reminder not found.")
        return

    msg = f"✅ *{escape_md(outcome.reminder.message)}*"
    if outcome.next_fire is not None:
        msg += f"\n\nNext reminder: {_fmt_when(outcome.next_fire)}"
        _trigger_scheduler(context)
    await query.edit_message_text(msg, parse_mode="Markdown")


async def _handle_intent_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle Confirm/Cancel under an LLM-parsed item list."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    sessions = context.bot_data["sessions"]
    session = sessions.get(user.id, kind=CONFIRM_SESSION)
    if session is None:
        await query.edit_message_text("This request has expired. Please send it again.")
        return
    sessions.clear(user.id)

    if query.data.endswith(":cancel"):
        await query.edit_message_text("Cancelled.")
        return

    lines = ["✅ *Saved:*\n"]
    for item in session.payload:
        try:
            lines.append(_create_parsed(context, user.id, item))
        except Exception as exc:
            logger.error("Failed to create parsed %s: %s", item.intent, exc)
            lines.append(f"⚠️ Couldn't save {item.intent}")

    _trigger_scheduler(context)
    await query.edit_message_text("\n".join(lines), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text — parse with the LLM and ask for confirmation."""
    from src.core.llm import is_configured
    from src.core.parser import parse_message

    if not is_configured():
        await update.message.reply_text(
            "Free-text input is not enabled. Use /help to see the commands."
        )
        return

    processing_msg = await update.message.reply_text("Processing...")
    items = await parse_message(update.message.text, local_now())
    try:
        await processing_msg.delete()
    except Exception:
        pass  # Non-critical if delete fails

    if not items:
        await update.message.reply_text(
            "I couldn't find a reminder, event or todo in that. Try /help."
        )
        return

    context.bot_data["sessions"].create(update.effective_user.id, CONFIRM_SESSION, items)
    lines = ["*Shall I save this?*\n"] + [_describe_parsed(i) for i in items]
    buttons = InlineKeyboardMarkup([[
        InlineKeyboardButton("✅ Confirm", callback_data="intent:confirm"),
        InlineKeyboardButton("❌ Cancel", callback_data="intent:cancel"),
    ]])
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown", reply_markup=buttons)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def _build_services(app: Application, notifier: NotificationPort, db_path: str | None) -> None:
    """Create repositories and scheduler components and store them in bot_data."""
    from src.core.advancer import OccurrenceAdvancer
    from src.core.dispatcher import NotificationDispatcher
    from src.core.due_detector import DueDetector
    from src.core.scheduler import SchedulerLoop
    from src.core.sessions import SessionStore
    from src.data.db import EventDB, ReminderDB, TodoDB, UserSettingsDB

    reminders = ReminderDB(db_path)
    events = EventDB(db_path)
    todos = TodoDB(db_path)
    user_settings = UserSettingsDB(db_path)

    advancer = OccurrenceAdvancer(reminders, events, todos, user_settings)
    detector = DueDetector(
        reminders, events, todos, user_settings,
        reminder_cooldown=timedelta(seconds=settings.REMINDER_COOLDOWN_SECONDS),
    )
    scheduler = SchedulerLoop(
        detector,
        NotificationDispatcher(notifier),
        advancer,
        events,
        todos,
        interval_seconds=settings.SCHEDULER_INTERVAL_SECONDS,
        startup_delay_seconds=settings.SCHEDULER_STARTUP_DELAY_SECONDS,
    )

    app.bot_data.update({
        "notifier": notifier,
        "reminders": reminders,
        "events": events,
        "todos": todos,
        "user_settings": user_settings,
        "advancer": advancer,
        "scheduler": scheduler,
        "sessions": SessionStore(ttl_seconds=settings.SESSION_TTL_SECONDS),
    })


async def _post_init(app: Application) -> None:
    app.bot_data["scheduler"].start()


async def _post_shutdown(app: Application) -> None:
    await app.bot_data["scheduler"].stop()


def build_app(
    notifier: NotificationPort | None = None,
    db_path: str | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
        db_path: SQLite file. Defaults to settings.DATABASE_PATH.
    """
    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    _build_services(app, notifier, db_path)

    # Commands
    for name, handler in (
        ("start", cmd_start),
        ("help", cmd_help),
        ("remind", cmd_remind),
        ("reminders", cmd_reminders),
        ("delreminder", cmd_delreminder),
        ("event", cmd_event),
        ("events", cmd_events),
        ("delevent", cmd_delevent),
        ("todo", cmd_todo),
        ("todos", cmd_todos),
        ("done", cmd_done),
        ("settings", cmd_settings),
        ("quiet", cmd_quiet),
        ("maxdaily", cmd_maxdaily),
        ("interval", cmd_interval),
        ("summary", cmd_summary),
        ("todoreminders", cmd_todoreminders),
    ):
        app.add_handler(CommandHandler(name, handler))

    app.add_handler(CallbackQueryHandler(_handle_remind_ack_callback, pattern=r"^remind_ack:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_intent_callback, pattern=r"^intent:(confirm|cancel)$"))

    # Text messages (non-command)
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting LifeLine Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
