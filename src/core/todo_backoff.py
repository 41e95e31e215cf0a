"""
LifeLine Assistant — Todo re-notification backoff.

Todos have no occurrence schedule. Instead they are nagged repeatedly, with
the gap between nags chosen by how close the due time is (urgency zone) and
how important the todo is (priority multiplier).

Zones, by time left until due:

    overdue   < 0
    urgent    [0, 2h)
    soon      [2h, 24h)
    normal    [24h, 7d)
    (>= 7d is out of range and never notified)
"""

from __future__ import annotations

from datetime import datetime, timedelta

from src.data.models import (
    ZONE_NORMAL,
    ZONE_OVERDUE,
    ZONE_SOON,
    ZONE_URGENT,
    ReminderIntervals,
)

URGENT_WINDOW = timedelta(hours=2)
SOON_WINDOW = timedelta(hours=24)
NORMAL_WINDOW = timedelta(days=7)

MIN_INTERVAL_MINUTES = 1

_PRIORITY_MULTIPLIERS = {
    5: 0.5,
    4: 0.7,
    3: 1.0,
    2: 1.5,
    1: 2.0,
}


def urgency_zone(due_time: datetime, now: datetime) -> str | None:
    """Bucket the time left until ``due_time``; None when 7 days or more away."""
    remaining = due_time - now
    if remaining < timedelta(0):
        return ZONE_OVERDUE
    if remaining < URGENT_WINDOW:
        return ZONE_URGENT
    if remaining < SOON_WINDOW:
        return ZONE_SOON
    if remaining < NORMAL_WINDOW:
        return ZONE_NORMAL
    return None


def priority_multiplier(priority: int) -> float:
    """Interval multiplier; unset or unknown priorities count as 3."""
    return _PRIORITY_MULTIPLIERS.get(priority, 1.0)


def effective_interval(base_minutes: int, priority: int) -> timedelta | None:
    """Re-notification interval, or None when the zone is disabled (base 0)."""
    if base_minutes <= 0:
        return None
    minutes = int(base_minutes * priority_multiplier(priority))
    return timedelta(minutes=max(MIN_INTERVAL_MINUTES, minutes))


def should_notify(
    due_time: datetime | None,
    last_notified_at: datetime | None,
    priority: int,
    intervals: ReminderIntervals,
    now: datetime,
) -> tuple[bool, str | None]:
    """Decide whether a todo is due for another nag.

    Returns:
        (eligible, zone). ``zone`` is None for todos without a due time or
        further than 7 days out.
    """
    if due_time is None:
        return False, None

    zone = urgency_zone(due_time, now)
    if zone is None:
        return False, None

    interval = effective_interval(intervals.for_zone(zone), priority)
    if interval is None:
        return False, zone

    if last_notified_at is None:
        return True, zone
    return now - last_notified_at >= interval, zone
