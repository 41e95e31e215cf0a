"""
LifeLine Assistant — Recurrence Engine.

Evaluates RFC 5545-style recurrence rules with dateutil.rrule:

    FREQ=<HOURLY|DAILY|WEEKLY|MONTHLY|YEARLY>[;INTERVAL=n][;BYHOUR=h,..]
    [;BYMINUTE=m,..][;BYDAY=MO,..][;BYMONTHDAY=d,..][;BYMONTH=m,..]
    [;COUNT=n][;UNTIL=YYYYMMDDTHHMMSSZ]

Anchors are persisted as wall-clock values without zone info. Whatever
tzinfo an anchor arrives with, its clock fields are taken as deployment-local
time; shifting them through UTC would move every occurrence. All results are
naive deployment-local datetimes.

Everything here is pure: no I/O, no state between calls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from dateutil.rrule import rrule, rrulestr

from src.core.clock import local_zone, to_local, wall_clock

logger = logging.getLogger(__name__)

FREQUENCIES = ("HOURLY", "DAILY", "WEEKLY", "MONTHLY", "YEARLY")
WEEKDAYS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

# Upper bound on candidates examined by next_occurrence_strict
MAX_STRICT_ITERATIONS = 1000

_KNOWN_KEYS = frozenset({
    "FREQ", "INTERVAL", "COUNT", "UNTIL", "WKST",
    "BYHOUR", "BYMINUTE", "BYDAY", "BYMONTHDAY", "BYMONTH",
})

# Inclusive bounds; BYMONTHDAY also excludes 0
_BY_RANGES = {
    "BYHOUR": (0, 23),
    "BYMINUTE": (0, 59),
    "BYMONTH": (1, 12),
    "BYMONTHDAY": (-31, 31),
}

# Longest each month can run, February counted as a leap month
_MONTH_LENGTHS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

_UNTIL_UTC_FORMAT = "%Y%m%dT%H%M%SZ"
_UNTIL_LOCAL_FORMAT = "%Y%m%dT%H%M%S"


class RecurrenceError(ValueError):
    """Raised when a recurrence rule string cannot be evaluated."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def is_recurring(rule: str | None) -> bool:
    """True if ``rule`` looks like a recurrence rule (contains FREQ=)."""
    return bool(rule) and "FREQ=" in rule.upper()


def _split_rule(rule: str) -> dict[str, str]:
    body = rule.strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:"):]

    parts: dict[str, str] = {}
    for chunk in body.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        key, sep, value = chunk.partition("=")
        if not sep or not value:
            raise RecurrenceError(f"Malformed rule component: {chunk!r}")
        parts[key.strip().upper()] = value.strip().upper()
    return parts


def _localize_until(value: str) -> str:
    """Rewrite a UTC ``UNTIL`` into a deployment-local wall-clock bound."""
    if not value.endswith("Z"):
        return value
    try:
        until_utc = datetime.strptime(value, _UNTIL_UTC_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise RecurrenceError(f"Invalid UNTIL value: {value!r}") from exc
    return to_local(until_utc).strftime(_UNTIL_LOCAL_FORMAT)


def _int_list(parts: dict[str, str], key: str) -> list[int]:
    """Parse a BY* list and check every value against its range."""
    if key not in parts:
        return []
    low, high = _BY_RANGES[key]
    values = []
    for raw in parts[key].split(","):
        try:
            value = int(raw)
        except ValueError as exc:
            raise RecurrenceError(f"{key} values must be integers, got {raw!r}") from exc
        if not low <= value <= high or (key == "BYMONTHDAY" and value == 0):
            raise RecurrenceError(f"{key} value {value} is out of range")
        values.append(value)
    return values


def _check_satisfiable(parts: dict[str, str], dtstart: datetime) -> None:
    """Reject day/month constraints that no calendar date can meet.

    dateutil searches such rules until year 9999 before giving up, so they
    are refused up front. Mirrors dateutil's defaults: MONTHLY and YEARLY
    rules without BYMONTHDAY or BYDAY repeat on the anchor's day, and YEARLY
    ones also on the anchor's month.
    """
    freq = parts["FREQ"]
    months = _int_list(parts, "BYMONTH")
    days = _int_list(parts, "BYMONTHDAY")
    _int_list(parts, "BYHOUR")
    _int_list(parts, "BYMINUTE")

    if not days and "BYDAY" not in parts and freq in ("MONTHLY", "YEARLY"):
        days = [dtstart.day]
        if freq == "YEARLY" and not months:
            months = [dtstart.month]

    candidates = set(months or range(1, 13))
    if freq == "MONTHLY":
        step = int(parts.get("INTERVAL", "1"))
        candidates &= {(dtstart.month - 1 + k * step) % 12 + 1 for k in range(12)}
    if not candidates:
        raise RecurrenceError("BYMONTH is never reached at this INTERVAL")

    if days and not any(abs(d) <= _MONTH_LENGTHS[m - 1] for m in candidates for d in days):
        raise RecurrenceError("BYMONTHDAY never falls within BYMONTH")


def parse_rule(rule: str, anchor: datetime) -> rrule:
    """Build a dateutil rrule anchored at ``anchor``'s wall-clock fields.

    Raises:
        RecurrenceError: the rule is empty, has an unsupported FREQ or
            component, a BY* value out of range, day/month constraints that
            can never match, or dateutil rejects it.
    """
    if not is_recurring(rule):
        raise RecurrenceError(f"Not a recurrence rule: {rule!r}")

    parts = _split_rule(rule)
    freq = parts.get("FREQ")
    if freq not in FREQUENCIES:
        raise RecurrenceError(f"Unsupported FREQ: {freq!r}")
    unknown = sorted(set(parts) - _KNOWN_KEYS)
    if unknown:
        raise RecurrenceError(f"Unsupported rule component(s): {', '.join(unknown)}")
    for key in ("INTERVAL", "COUNT"):
        if key in parts and (not parts[key].isdigit() or int(parts[key]) < 1):
            raise RecurrenceError(f"{key} must be a positive integer, got {parts[key]!r}")
    if "UNTIL" in parts:
        parts["UNTIL"] = _localize_until(parts["UNTIL"])

    dtstart = wall_clock(anchor).replace(microsecond=0)
    _check_satisfiable(parts, dtstart)

    normalized = ";".join(f"{key}={value}" for key, value in parts.items())
    try:
        return rrulestr(normalized, dtstart=dtstart)
    except (ValueError, TypeError, KeyError) as exc:
        raise RecurrenceError(f"Failed to parse rule {rule!r}: {exc}") from exc


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _after(parsed: rrule, when: datetime, inc: bool) -> datetime | None:
    try:
        return parsed.after(when, inc=inc)
    except (ArithmeticError, LookupError, TypeError, ValueError) as exc:
        raise RecurrenceError(f"Failed to evaluate rule after {when}: {exc}") from exc


def next_occurrence(rule: str, anchor: datetime, after: datetime) -> datetime | None:
    """Earliest occurrence at or after ``after``; None once COUNT/UNTIL is exhausted."""
    parsed = parse_rule(rule, anchor)
    return _after(parsed, to_local(after), inc=True)


def next_occurrence_strict(rule: str, anchor: datetime, after: datetime) -> datetime | None:
    """Earliest occurrence strictly later than ``after``.

    Used after a fire so the instant that just fired is never returned again.
    Returns None when the rule is exhausted or no strictly later candidate
    turns up within MAX_STRICT_ITERATIONS steps.
    """
    parsed = parse_rule(rule, anchor)
    boundary = to_local(after)

    current = boundary
    for _ in range(MAX_STRICT_ITERATIONS):
        candidate = _after(parsed, current, inc=True)
        if candidate is None:
            return None
        if candidate > boundary:
            return candidate
        current = candidate + timedelta(seconds=1)

    logger.warning("Strict occurrence search gave up for rule %r after %s", rule, boundary)
    return None


def next_occurrences(
    rule: str, anchor: datetime, after: datetime, count: int,
) -> list[datetime]:
    """Up to ``count`` occurrences strictly later than ``after``."""
    parsed = parse_rule(rule, anchor)
    results: list[datetime] = []
    current = to_local(after)
    while len(results) < count:
        nxt = _after(parsed, current, inc=False)
        if nxt is None:
            break
        results.append(nxt)
        current = nxt
    return results


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def _join(values: list[int] | list[str]) -> str:
    return ",".join(str(v) for v in values)


def build_rule(
    freq: str,
    interval: int = 1,
    by_hour: list[int] | None = None,
    by_minute: list[int] | None = None,
    by_day: list[str] | None = None,
    by_month_day: list[int] | None = None,
    by_month: list[int] | None = None,
    count: int | None = None,
    until: datetime | None = None,
) -> str:
    """Assemble a rule string from components.

    ``until`` is a deployment-local wall-clock bound; it is written in UTC
    as the stored format expects.
    """
    freq = freq.upper()
    if freq not in FREQUENCIES:
        raise RecurrenceError(f"Unsupported FREQ: {freq!r}")

    parts = [f"FREQ={freq}"]
    if interval > 1:
        parts.append(f"INTERVAL={interval}")
    if by_hour:
        parts.append(f"BYHOUR={_join(by_hour)}")
    if by_minute:
        parts.append(f"BYMINUTE={_join(by_minute)}")
    if by_day:
        days = [d.upper() for d in by_day]
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise RecurrenceError(f"Unknown weekday(s): {unknown}")
        parts.append(f"BYDAY={_join(days)}")
    if by_month_day:
        parts.append(f"BYMONTHDAY={_join(by_month_day)}")
    if by_month:
        parts.append(f"BYMONTH={_join(by_month)}")
    if count:
        parts.append(f"COUNT={count}")
    if until is not None:
        aware = wall_clock(until).replace(tzinfo=local_zone())
        parts.append(f"UNTIL={aware.astimezone(timezone.utc).strftime(_UNTIL_UTC_FORMAT)}")
    return ";".join(parts)


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------

_UNITS = {
    "HOURLY": "hour",
    "DAILY": "day",
    "WEEKLY": "week",
    "MONTHLY": "month",
    "YEARLY": "year",
}

_DAY_NAMES = {
    "MO": "Mon", "TU": "Tue", "WE": "Wed", "TH": "Thu",
    "FR": "Fri", "SA": "Sat", "SU": "Sun",
}


def describe_rule(rule: str | None) -> str:
    """Render a rule as a short English phrase, e.g. 'every 2 weeks on Mon, Thu at 9:00'.

    Display only. Unrecognised input is returned unchanged.
    """
    if not rule:
        return "once"
    try:
        info = _split_rule(rule)
    except RecurrenceError:
        return rule

    phrase: list[str] = []

    unit = _UNITS.get(info.get("FREQ", ""))
    if unit:
        interval = info.get("INTERVAL", "1")
        if interval in ("", "1"):
            phrase.append(f"every {unit}")
        else:
            phrase.append(f"every {interval} {unit}s")

    if by_day := info.get("BYDAY"):
        names = [_DAY_NAMES[d[-2:]] for d in by_day.split(",") if d[-2:] in _DAY_NAMES]
        if names:
            phrase.append("on " + ", ".join(names))

    if by_hour := info.get("BYHOUR"):
        hours = by_hour.split(",")
        minutes = info.get("BYMINUTE", "0").split(",")
        minute = minutes[0].zfill(2) if len(minutes) == 1 else "00"
        if len(hours) > 3:
            phrase.append(f"between {hours[0]}:{minute} and {hours[-1]}:{minute}")
        else:
            phrase.append("at " + ", ".join(f"{h}:{minute}" for h in hours))

    if not phrase:
        return rule

    text = " ".join(phrase)

    if count := info.get("COUNT"):
        text += f", {count} times"

    if until := info.get("UNTIL"):
        try:
            if until.endswith("Z"):
                bound = to_local(
                    datetime.strptime(until, _UNTIL_UTC_FORMAT).replace(tzinfo=timezone.utc)
                )
            else:
                bound = datetime.strptime(until[:8], "%Y%m%d")
            text += f", until {bound.date().isoformat()}"
        except ValueError:
            pass

    return text[0].upper() + text[1:]
