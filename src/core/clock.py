"""
LifeLine Assistant — Deployment wall clock.

Every timestamp the bot persists is a naive wall-clock value in the
deployment time zone (settings.TIMEZONE). These helpers are the only place
that converts between that representation and aware datetimes.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo


def local_zone() -> ZoneInfo:
    """Return the deployment time zone."""
    from src.config import settings

    return ZoneInfo(settings.TIMEZONE)


def local_now() -> datetime:
    """Current deployment-local wall-clock time, naive, second precision."""
    return datetime.now(local_zone()).replace(tzinfo=None, microsecond=0)


def to_local(dt: datetime) -> datetime:
    """Convert an instant to a naive deployment-local value.

    Naive inputs are assumed to already be deployment-local.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(local_zone()).replace(tzinfo=None)


def wall_clock(dt: datetime) -> datetime:
    """Keep the clock fields of ``dt`` and drop whatever zone it was tagged with."""
    return dt.replace(tzinfo=None)


def in_zone(dt: datetime, zone_name: str) -> datetime:
    """Project a naive deployment-local value into another IANA zone (aware).

    Falls back to the deployment zone when ``zone_name`` is unknown.
    """
    try:
        target = ZoneInfo(zone_name)
    except (KeyError, ValueError):
        target = local_zone()
    return dt.replace(tzinfo=local_zone()).astimezone(target)
