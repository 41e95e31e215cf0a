"""
LifeLine Assistant — LLM Parser.

Turns free text ("remind me to stretch every weekday at 10") into
structured reminders, events and todos using the configured LLM provider.
A single message may yield several items. Items that fail validation are
dropped with a warning; the rest are returned for user confirmation.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from pydantic import BaseModel, ValidationError, field_validator

from src.core.clock import local_now
from src.core.llm import complete
from src.core.recurrence import RecurrenceError, parse_rule
from src.data.models import parse_hhmm

logger = logging.getLogger(__name__)


def _check_date(value: str) -> str:
    datetime.strptime(value, "%Y-%m-%d")
    return value


def _check_time(value: str) -> str:
    return parse_hhmm(value).strftime("%H:%M")


def _check_rule(value: str) -> str:
    value = (value or "").strip().upper()
    if not value:
        return ""
    try:
        parse_rule(value, datetime(2000, 1, 1))
    except RecurrenceError as exc:
        raise ValueError(str(exc)) from exc
    return value.removeprefix("RRULE:")


def _combine(day: str, time_of_day: str) -> datetime:
    return datetime.combine(datetime.strptime(day, "%Y-%m-%d").date(), parse_hhmm(time_of_day))


# ---------------------------------------------------------------------------
# JSON contract
# ---------------------------------------------------------------------------


class _ScheduledItem(BaseModel):
    """Fields shared by items that happen at a specific date and time."""
    date: str            # YYYY-MM-DD, first occurrence
    time: str            # HH:MM in 24h format
    recurrence_rule: str = ""
    description: str = ""

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return _check_date(v)

    @field_validator("time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return _check_time(v)

    @field_validator("recurrence_rule")
    @classmethod
    def check_rule(cls, v: str) -> str:
        return _check_rule(v)

    @property
    def dtstart(self) -> datetime:
        return _combine(self.date, self.time)


class ParsedReminder(_ScheduledItem):
    """A reminder extracted from natural language.

    JSON example:
    {
        "intent": "reminder",
        "message": "Stretch",
        "date": "2025-02-14",
        "time": "10:00",
        "recurrence_rule": "FREQ=DAILY;BYDAY=MO,TU,WE,TH,FR"
    }
    """
    intent: str = "reminder"
    message: str


class ParsedEvent(_ScheduledItem):
    """A calendar event extracted from natural language.

    JSON example:
    {
        "intent": "event",
        "title": "Team sync",
        "date": "2025-02-14",
        "time": "15:00",
        "duration_minutes": 30,
        "recurrence_rule": "FREQ=WEEKLY"
    }
    """
    intent: str = "event"
    title: str
    duration_minutes: int = 60
    notification_minutes: int = 30

    @field_validator("duration_minutes", "notification_minutes")
    @classmethod
    def non_negative(cls, v: int) -> int:
        return max(0, v)


class ParsedTodo(BaseModel):
    """A todo extracted from natural language. Due date and time are optional.

    JSON example:
    {"intent": "todo", "title": "File taxes", "priority": 4,
     "due_date": "2025-04-30", "due_time": "18:00"}
    """
    intent: str = "todo"
    title: str
    priority: int = 0
    due_date: str = ""
    due_time: str = ""
    description: str = ""

    @field_validator("priority")
    @classmethod
    def clamp_priority(cls, v: int) -> int:
        return min(5, max(0, v))

    @field_validator("due_date")
    @classmethod
    def check_due_date(cls, v: str) -> str:
        return _check_date(v) if v else ""

    @field_validator("due_time")
    @classmethod
    def check_due_time(cls, v: str) -> str:
        return _check_time(v) if v else ""

    @property
    def due(self) -> datetime | None:
        if not self.due_date:
            return None
        return _combine(self.due_date, self.due_time or "23:59")


ParserResponse = ParsedReminder | ParsedEvent | ParsedTodo

_MODELS: dict[str, type[BaseModel]] = {
    "reminder": ParsedReminder,
    "event": ParsedEvent,
    "todo": ParsedTodo,
}


# ---------------------------------------------------------------------------
# System prompt for LLM
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are the intent extraction engine of a personal assistant.
Parse the user's message and extract every reminder, event and todo it asks for.

The current local date and time is {now} ({weekday}).

**ALWAYS return a JSON array** `[]`, even for a single item.

**Reminder** — something the user wants to be pinged about at a time:
{{"intent": "reminder", "message": "string", "date": "YYYY-MM-DD", "time": "HH:MM", "recurrence_rule": "string", "description": "string"}}

**Event** — something on the calendar with a duration:
{{"intent": "event", "title": "string", "date": "YYYY-MM-DD", "time": "HH:MM", "duration_minutes": integer, "notification_minutes": integer, "recurrence_rule": "string", "description": "string"}}

**Todo** — a task to get done, optionally by a deadline:
{{"intent": "todo", "title": "string", "priority": integer, "due_date": "YYYY-MM-DD", "due_time": "HH:MM", "description": "string"}}

**Rules:**
- "time" and "due_time" use 24-hour format.
- "recurrence_rule" is empty for one-off items, otherwise an RFC 5545 RRULE body
  without the "RRULE:" prefix, e.g. "FREQ=DAILY", "FREQ=WEEKLY;BYDAY=MO,WE",
  "FREQ=MONTHLY;BYMONTHDAY=1". Allowed FREQ: HOURLY, DAILY, WEEKLY, MONTHLY, YEARLY.
- For a recurring item "date"/"time" is the first occurrence.
- "priority" is 1 (lowest) to 5 (highest), 0 if not mentioned.
- "duration_minutes" defaults to 60, "notification_minutes" to 30.
- Interpret relative dates ("tomorrow", "next Monday") relative to now.
- If the message contains nothing actionable, return exactly: []
- Return ONLY the JSON array. No markdown, no explanation, no extra text.
"""


# ---------------------------------------------------------------------------
# Response cleaning
# ---------------------------------------------------------------------------


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def _instantiate_item(data: dict) -> ParserResponse | None:
    """Validate one item dict into its typed model, or None if unusable."""
    intent = data.get("intent")
    model = _MODELS.get(intent)
    if model is None:
        logger.warning("LLM returned unknown intent: '%s'", intent)
        return None

    try:
        parsed = model(**data)
    except ValidationError as exc:
        logger.warning("Dropping invalid %s item: %s", intent, exc.errors()[0].get("msg"))
        return None

    logger.info("Parsed %s: %s", intent, data.get("message") or data.get("title"))
    return parsed


# ---------------------------------------------------------------------------
# Parser function
# ---------------------------------------------------------------------------


async def parse_message(user_message: str, now: datetime | None = None) -> list[ParserResponse]:
    """Parse a user message into reminders, events and todos.

    Returns a possibly empty list. Never raises; LLM and decoding errors
    are logged and yield [].
    """
    now = now or local_now()
    system_prompt = _SYSTEM_PROMPT.format(
        now=now.strftime("%Y-%m-%d %H:%M"), weekday=now.strftime("%A"),
    )

    raw_text = ""
    try:
        raw_text = await complete(
            system=system_prompt,
            user_message=user_message,
            max_tokens=1024,
        )
        raw_text = _clean_llm_response(raw_text)
        logger.debug("LLM raw response: %s", raw_text)

        if raw_text in ("null", "[]", ""):
            logger.info("No items found in message: %s", user_message[:80])
            return []

        data = json.loads(raw_text)
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            logger.warning("LLM returned unexpected type: %s", type(data).__name__)
            return []

        results: list[ParserResponse] = []
        for item in data:
            if not isinstance(item, dict):
                logger.warning("Skipping non-dict item in array: %s", item)
                continue
            parsed = _instantiate_item(item)
            if parsed is not None:
                results.append(parsed)
        return results

    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text)
        return []
    except Exception as exc:
        logger.error("Unexpected error in parse_message: %s", exc)
        return []
