"""
LifeLine Assistant — Data Models.

Reminders, events and todos persist in SQLite across restarts. All
timestamps are naive wall-clock values in the deployment time zone
(see src.core.clock).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta

ZONE_OVERDUE = "overdue"
ZONE_URGENT = "urgent"
ZONE_SOON = "soon"
ZONE_NORMAL = "normal"

ZONES = (ZONE_OVERDUE, ZONE_URGENT, ZONE_SOON, ZONE_NORMAL)


def _has_rule(rule: str) -> bool:
    return bool(rule) and "FREQ=" in rule.upper()


@dataclass
class Reminder:
    """A one-shot or recurring message delivered until the user acknowledges it."""

    id: int
    user_id: int
    message: str
    enabled: bool = True
    description: str = ""
    tags: str = ""
    recurrence_rule: str = ""
    dtstart: datetime | None = None          # anchor, required if recurring
    remind_at: datetime | None = None        # next fire time
    notified_at: datetime | None = None      # last delivery
    acknowledged_at: datetime | None = None  # user confirmed receipt
    last_message_id: int | None = None       # handle for retraction before resend
    created_at: datetime | None = None

    def is_recurring(self) -> bool:
        return _has_rule(self.recurrence_rule)


@dataclass
class Event:
    """A possibly recurring calendar item with a duration.

    ``next_occurrence`` is the materialised next fire time; it is rolled
    forward (or cleared) by the scheduler once it has elapsed.
    """

    id: int
    user_id: int
    title: str
    description: str = ""
    tags: str = ""
    dtstart: datetime | None = None
    duration: int = 60                       # minutes
    recurrence_rule: str = ""
    next_occurrence: datetime | None = None
    notification_minutes: int = 30           # lead time before next_occurrence
    notified_at: datetime | None = None
    created_at: datetime | None = None

    def is_recurring(self) -> bool:
        return _has_rule(self.recurrence_rule)

    def end_time(self) -> datetime | None:
        start = self.next_occurrence or self.dtstart
        if start is None or self.duration <= 0:
            return None
        return start + timedelta(minutes=self.duration)


@dataclass
class Todo:
    """A task with an optional due time and priority (1-5, 5 highest, 0 unset)."""

    id: int
    user_id: int
    title: str
    priority: int = 0
    description: str = ""
    tags: str = ""
    due_time: datetime | None = None
    completed_at: datetime | None = None
    last_notified_at: datetime | None = None
    created_at: datetime | None = None

    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class ReminderIntervals:
    """Base re-notification interval per urgency zone, in minutes. 0 disables a zone."""

    overdue: int = 30
    urgent: int = 30
    soon: int = 120
    normal: int = 480

    def for_zone(self, zone: str) -> int:
        if zone not in ZONES:
            return 0
        return getattr(self, zone)

    def to_dict(self) -> dict[str, int]:
        return {zone: getattr(self, zone) for zone in ZONES}

    @classmethod
    def from_dict(cls, data: dict) -> ReminderIntervals:
        defaults = cls()
        values = {}
        for zone in ZONES:
            raw = data.get(zone, getattr(defaults, zone))
            values[zone] = max(0, int(raw))
        return cls(**values)


@dataclass
class UserSettings:
    """Per-user notification preferences."""

    user_id: int
    max_daily_reminders: int = 10            # 0 = unlimited
    quiet_start: str = "22:00"               # HH:MM
    quiet_end: str = "08:00"                 # HH:MM
    timezone: str = "Asia/Taipei"
    reminder_intervals: ReminderIntervals = field(default_factory=ReminderIntervals)
    todo_reminders_enabled: bool = True
    last_todo_message_id: int | None = None
    daily_summary_enabled: bool = True
    daily_summary_time: str = "08:00"        # HH:MM
    last_daily_summary_date: date | None = None
    updated_at: datetime | None = None

    def local_time(self, now: datetime) -> datetime:
        """``now`` (deployment-local, naive) seen on the user's own clock."""
        from src.core.clock import in_zone

        return in_zone(now, self.timezone)

    def local_date(self, now: datetime) -> date:
        return self.local_time(now).date()

    def is_quiet_hours(self, now: datetime) -> bool:
        """True when ``now`` falls inside the quiet window.

        The window is [start, end) and wraps midnight when start > end.
        Equal start and end means no quiet window at all.
        """
        local = self.local_time(now)
        current = local.hour * 60 + local.minute
        start = _minutes_of_day(self.quiet_start)
        end = _minutes_of_day(self.quiet_end)

        if start > end:
            return current >= start or current < end
        return start <= current < end

    def should_send_daily_summary(self, now: datetime) -> bool:
        """True once per local day, at or after the configured summary time."""
        if not self.daily_summary_enabled:
            return False

        local = self.local_time(now)
        if self.last_daily_summary_date is not None and self.last_daily_summary_date >= local.date():
            return False

        summary_minutes = _minutes_of_day(self.daily_summary_time)
        return local.hour * 60 + local.minute >= summary_minutes

    def is_over_daily_cap(self, sent_today: int) -> bool:
        return self.max_daily_reminders > 0 and sent_today >= self.max_daily_reminders


def parse_hhmm(value: str) -> dt_time:
    """Parse ``HH:MM`` (also accepts ``HH:MM:SS``). Raises ValueError."""
    value = value.strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time of day: {value!r}")


def _minutes_of_day(value: str) -> int:
    try:
        t = parse_hhmm(value)
    except ValueError:
        return 0
    return t.hour * 60 + t.minute
