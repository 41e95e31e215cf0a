"""
LifeLine Assistant — SQLite storage.

Reminders, events, todos and per-user notification settings persist in a
single SQLite file. Timestamps are stored as deployment-local wall-clock
text (``YYYY-MM-DD HH:MM:SS``) so string comparison orders them correctly.

Every write is a single conditional statement; the scheduler and the
command handlers rely on that per-row atomicity instead of locks.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timedelta
from pathlib import Path

from src.core.clock import local_now, to_local
from src.data.models import Event, Reminder, ReminderIntervals, Todo, UserSettings

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return to_local(value).strftime(_TS_FORMAT)


def _dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class _SQLiteStore:
    """Connection handling shared by the table-specific stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class ReminderDB(_SQLiteStore):
    """SQLite-backed storage for reminders."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id          INTEGER NOT NULL,
                    enabled          INTEGER NOT NULL DEFAULT 1,
                    message          TEXT    NOT NULL,
                    description      TEXT    NOT NULL DEFAULT '',
                    tags             TEXT    NOT NULL DEFAULT '',
                    recurrence_rule  TEXT    NOT NULL DEFAULT '',
                    dtstart          TEXT,
                    remind_at        TEXT,
                    notified_at      TEXT,
                    acknowledged_at  TEXT,
                    last_message_id  INTEGER,
                    created_at       TEXT    NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reminders_user_id ON reminders(user_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reminders_remind_at ON reminders(remind_at)"
            )
        logger.debug("Reminders table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            user_id=row["user_id"],
            enabled=bool(row["enabled"]),
            message=row["message"],
            description=row["description"],
            tags=row["tags"],
            recurrence_rule=row["recurrence_rule"],
            dtstart=_dt(row["dtstart"]),
            remind_at=_dt(row["remind_at"]),
            notified_at=_dt(row["notified_at"]),
            acknowledged_at=_dt(row["acknowledged_at"]),
            last_message_id=row["last_message_id"],
            created_at=_dt(row["created_at"]),
        )

    def add(
        self,
        user_id: int,
        message: str,
        remind_at: datetime | None,
        dtstart: datetime | None = None,
        recurrence_rule: str = "",
        description: str = "",
        tags: str = "",
        enabled: bool = True,
    ) -> Reminder:
        """Insert a new reminder."""
        created_at = local_now()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO reminders
                    (user_id, enabled, message, description, tags,
                     recurrence_rule, dtstart, remind_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id, int(enabled), message, description, tags,
                    recurrence_rule, _ts(dtstart), _ts(remind_at), _ts(created_at),
                ),
            )
            reminder_id = cursor.lastrowid

        logger.info("Reminder added: #%d for user %d at %s", reminder_id, user_id, remind_at)
        return self.get_any(reminder_id)

    def get(self, reminder_id: int, user_id: int) -> Reminder | None:
        """Fetch a reminder owned by ``user_id``."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ? AND user_id = ?",
                (reminder_id, user_id),
            ).fetchone()
        return self._row_to_reminder(row) if row else None

    def get_any(self, reminder_id: int) -> Reminder | None:
        """Fetch a reminder regardless of owner."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
            ).fetchone()
        return self._row_to_reminder(row) if row else None

    def list_for_user(self, user_id: int) -> list[Reminder]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reminders WHERE user_id = ?
                ORDER BY remind_at IS NULL, remind_at
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def delete(self, reminder_id: int, user_id: int) -> bool:
        """Permanently delete a reminder."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE id = ? AND user_id = ?",
                (reminder_id, user_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Reminder #%d deleted", reminder_id)
        return deleted

    def list_due(self, now: datetime, renotify_before: datetime) -> list[Reminder]:
        """Enabled, unacknowledged reminders whose fire time has passed.

        Reminders notified after ``renotify_before`` are still cooling down.
        """
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reminders
                WHERE enabled = 1
                  AND remind_at IS NOT NULL AND remind_at <= ?
                  AND acknowledged_at IS NULL
                  AND (notified_at IS NULL OR notified_at <= ?)
                ORDER BY remind_at
                """,
                (_ts(now), _ts(renotify_before)),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def set_notified(self, reminder_id: int, notified_at: datetime, message_id: int | None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE reminders SET notified_at = ?, last_message_id = ? WHERE id = ?",
                (_ts(notified_at), message_id, reminder_id),
            )

    def set_acknowledged(self, reminder_id: int, acknowledged_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE reminders SET acknowledged_at = ? WHERE id = ?",
                (_ts(acknowledged_at), reminder_id),
            )

    def reschedule(self, reminder_id: int, remind_at: datetime) -> None:
        """Move to the next occurrence and forget the previous delivery cycle."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE reminders
                SET remind_at = ?, notified_at = NULL,
                    acknowledged_at = NULL, last_message_id = NULL
                WHERE id = ?
                """,
                (_ts(remind_at), reminder_id),
            )

    def set_enabled(self, reminder_id: int, user_id: int, enabled: bool) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE reminders SET enabled = ? WHERE id = ? AND user_id = ?",
                (int(enabled), reminder_id, user_id),
            )
        return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventDB(_SQLiteStore):
    """SQLite-backed storage for calendar events."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id               INTEGER NOT NULL,
                    title                 TEXT    NOT NULL,
                    description           TEXT    NOT NULL DEFAULT '',
                    tags                  TEXT    NOT NULL DEFAULT '',
                    dtstart               TEXT,
                    duration              INTEGER NOT NULL DEFAULT 60,
                    recurrence_rule       TEXT    NOT NULL DEFAULT '',
                    next_occurrence       TEXT,
                    notification_minutes  INTEGER NOT NULL DEFAULT 30,
                    notified_at           TEXT,
                    created_at            TEXT    NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_user_id ON events(user_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_next_occurrence ON events(next_occurrence)"
            )
        logger.debug("Events table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            tags=row["tags"],
            dtstart=_dt(row["dtstart"]),
            duration=row["duration"],
            recurrence_rule=row["recurrence_rule"],
            next_occurrence=_dt(row["next_occurrence"]),
            notification_minutes=row["notification_minutes"],
            notified_at=_dt(row["notified_at"]),
            created_at=_dt(row["created_at"]),
        )

    def add(
        self,
        user_id: int,
        title: str,
        dtstart: datetime | None,
        next_occurrence: datetime | None,
        duration: int = 60,
        notification_minutes: int = 30,
        recurrence_rule: str = "",
        description: str = "",
        tags: str = "",
    ) -> Event:
        """Insert a new event. ``next_occurrence`` is computed by the caller."""
        created_at = local_now()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO events
                    (user_id, title, description, tags, dtstart, duration,
                     recurrence_rule, next_occurrence, notification_minutes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id, title, description, tags, _ts(dtstart), max(0, duration),
                    recurrence_rule, _ts(next_occurrence), max(0, notification_minutes),
                    _ts(created_at),
                ),
            )
            event_id = cursor.lastrowid

        logger.info("Event added: #%d '%s' next at %s", event_id, title, next_occurrence)
        return self.get(event_id, user_id)

    def get(self, event_id: int, user_id: int) -> Event | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE id = ? AND user_id = ?",
                (event_id, user_id),
            ).fetchone()
        return self._row_to_event(row) if row else None

    def list_for_user(self, user_id: int) -> list[Event]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events WHERE user_id = ?
                ORDER BY next_occurrence IS NULL, next_occurrence, dtstart
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def list_between(self, user_id: int, start: datetime, end: datetime) -> list[Event]:
        """Events whose next occurrence falls in [start, end)."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events
                WHERE user_id = ? AND next_occurrence >= ? AND next_occurrence < ?
                ORDER BY next_occurrence
                """,
                (user_id, _ts(start), _ts(end)),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def delete(self, event_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM events WHERE id = ? AND user_id = ?",
                (event_id, user_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Event #%d deleted", event_id)
        return deleted

    def list_pending_notifications(self, now: datetime) -> list[Event]:
        """Events whose lead window has opened but whose occurrence is still ahead."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events
                WHERE next_occurrence IS NOT NULL
                  AND notified_at IS NULL
                  AND next_occurrence > ?
                  AND datetime(next_occurrence, '-' || notification_minutes || ' minutes') <= ?
                ORDER BY next_occurrence
                """,
                (_ts(now), _ts(now)),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def list_elapsed(self, now: datetime) -> list[Event]:
        """Events whose materialised occurrence is already over."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events
                WHERE next_occurrence IS NOT NULL AND next_occurrence <= ?
                ORDER BY next_occurrence
                """,
                (_ts(now),),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def set_notified(self, event_id: int, notified_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE events SET notified_at = ? WHERE id = ?",
                (_ts(notified_at), event_id),
            )

    def set_next_occurrence(self, event_id: int, next_occurrence: datetime | None) -> None:
        """Materialise the next occurrence; the new occurrence starts un-notified."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE events SET next_occurrence = ?, notified_at = NULL WHERE id = ?",
                (_ts(next_occurrence), event_id),
            )


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


class TodoDB(_SQLiteStore):
    """SQLite-backed storage for todo items."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS todos (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id           INTEGER NOT NULL,
                    title             TEXT    NOT NULL,
                    priority          INTEGER NOT NULL DEFAULT 0,
                    description       TEXT    NOT NULL DEFAULT '',
                    tags              TEXT    NOT NULL DEFAULT '',
                    due_time          TEXT,
                    completed_at      TEXT,
                    last_notified_at  TEXT,
                    created_at        TEXT    NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_todos_user_id ON todos(user_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_todos_due_time ON todos(due_time)"
            )
        logger.debug("Todos table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_todo(row: sqlite3.Row) -> Todo:
        return Todo(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            priority=row["priority"],
            description=row["description"],
            tags=row["tags"],
            due_time=_dt(row["due_time"]),
            completed_at=_dt(row["completed_at"]),
            last_notified_at=_dt(row["last_notified_at"]),
            created_at=_dt(row["created_at"]),
        )

    def add(
        self,
        user_id: int,
        title: str,
        priority: int = 0,
        due_time: datetime | None = None,
        description: str = "",
        tags: str = "",
    ) -> Todo:
        """Insert a new todo. Priority is clamped to 0-5."""
        created_at = local_now()
        priority = min(5, max(0, priority))
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO todos
                    (user_id, title, priority, description, tags, due_time, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, title, priority, description, tags, _ts(due_time), _ts(created_at)),
            )
            todo_id = cursor.lastrowid

        logger.info("Todo added: #%d '%s' (priority %d)", todo_id, title, priority)
        return self.get(todo_id, user_id)

    def get(self, todo_id: int, user_id: int) -> Todo | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM todos WHERE id = ? AND user_id = ?",
                (todo_id, user_id),
            ).fetchone()
        return self._row_to_todo(row) if row else None

    def list_for_user(self, user_id: int, include_completed: bool = False) -> list[Todo]:
        query = "SELECT * FROM todos WHERE user_id = ?"
        if not include_completed:
            query += " AND completed_at IS NULL"
        query += " ORDER BY priority DESC, due_time IS NULL, due_time, created_at DESC"

        with self._connect() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
        return [self._row_to_todo(r) for r in rows]

    def list_for_notification(self, user_id: int, now: datetime) -> list[Todo]:
        """Incomplete todos that are overdue or due within the next 7 days."""
        horizon = now + timedelta(days=7)
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM todos
                WHERE user_id = ? AND completed_at IS NULL
                  AND due_time IS NOT NULL AND due_time < ?
                ORDER BY due_time
                """,
                (user_id, _ts(horizon)),
            ).fetchall()
        return [self._row_to_todo(r) for r in rows]

    def complete(self, todo_id: int, user_id: int, completed_at: datetime) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE todos SET completed_at = ?
                WHERE id = ? AND user_id = ? AND completed_at IS NULL
                """,
                (_ts(completed_at), todo_id, user_id),
            )
        done = cursor.rowcount > 0
        if done:
            logger.info("Todo #%d completed", todo_id)
        return done

    def delete(self, todo_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM todos WHERE id = ? AND user_id = ?",
                (todo_id, user_id),
            )
        return cursor.rowcount > 0

    def set_last_notified_many(self, todo_ids: list[int], notified_at: datetime) -> None:
        if not todo_ids:
            return
        with self._connect() as conn:
            conn.executemany(
                "UPDATE todos SET last_notified_at = ? WHERE id = ?",
                [(_ts(notified_at), todo_id) for todo_id in todo_ids],
            )


# ---------------------------------------------------------------------------
# User settings
# ---------------------------------------------------------------------------


class UserSettingsDB(_SQLiteStore):
    """SQLite-backed storage for per-user notification settings and daily counters."""

    def __init__(self, db_path: str | None = None, default_timezone: str | None = None) -> None:
        if default_timezone is None:
            from src.config import settings
            default_timezone = settings.TIMEZONE
        self._default_timezone = default_timezone
        super().__init__(db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_settings (
                    user_id                  INTEGER PRIMARY KEY,
                    max_daily_reminders      INTEGER NOT NULL DEFAULT 10,
                    quiet_start              TEXT    NOT NULL DEFAULT '22:00',
                    quiet_end                TEXT    NOT NULL DEFAULT '08:00',
                    timezone                 TEXT    NOT NULL,
                    reminder_intervals       TEXT    NOT NULL,
                    todo_reminders_enabled   INTEGER NOT NULL DEFAULT 1,
                    last_todo_message_id     INTEGER,
                    daily_summary_enabled    INTEGER NOT NULL DEFAULT 1,
                    daily_summary_time       TEXT    NOT NULL DEFAULT '08:00',
                    last_daily_summary_date  TEXT,
                    updated_at               TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_reminder_count (
                    user_id  INTEGER NOT NULL,
                    date     TEXT    NOT NULL,
                    count    INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (user_id, date)
                )
            """)
        logger.debug("User settings tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_settings(row: sqlite3.Row) -> UserSettings:
        last_summary = row["last_daily_summary_date"]
        return UserSettings(
            user_id=row["user_id"],
            max_daily_reminders=row["max_daily_reminders"],
            quiet_start=row["quiet_start"],
            quiet_end=row["quiet_end"],
            timezone=row["timezone"],
            reminder_intervals=ReminderIntervals.from_dict(json.loads(row["reminder_intervals"])),
            todo_reminders_enabled=bool(row["todo_reminders_enabled"]),
            last_todo_message_id=row["last_todo_message_id"],
            daily_summary_enabled=bool(row["daily_summary_enabled"]),
            daily_summary_time=row["daily_summary_time"],
            last_daily_summary_date=date.fromisoformat(last_summary) if last_summary else None,
            updated_at=_dt(row["updated_at"]),
        )

    def get(self, user_id: int) -> UserSettings | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_settings WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._row_to_settings(row) if row else None

    def get_or_create(self, user_id: int) -> UserSettings:
        """Return the user's settings, inserting defaults on first access."""
        defaults = UserSettings(user_id=user_id, timezone=self._default_timezone)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO user_settings
                    (user_id, max_daily_reminders, quiet_start, quiet_end, timezone,
                     reminder_intervals, todo_reminders_enabled, daily_summary_enabled,
                     daily_summary_time, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id, defaults.max_daily_reminders, defaults.quiet_start,
                    defaults.quiet_end, defaults.timezone,
                    json.dumps(defaults.reminder_intervals.to_dict()),
                    int(defaults.todo_reminders_enabled),
                    int(defaults.daily_summary_enabled),
                    defaults.daily_summary_time, _ts(local_now()),
                ),
            )
        return self.get(user_id)

    def update(self, user_settings: UserSettings) -> None:
        """Persist the user-editable preference fields."""
        intervals = user_settings.reminder_intervals.to_dict()
        if any(minutes < 0 for minutes in intervals.values()):
            raise ValueError("Reminder intervals must be non-negative")

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE user_settings SET
                    max_daily_reminders = ?, quiet_start = ?, quiet_end = ?,
                    timezone = ?, reminder_intervals = ?, todo_reminders_enabled = ?,
                    daily_summary_enabled = ?, daily_summary_time = ?, updated_at = ?
                WHERE user_id = ?
                """,
                (
                    max(0, user_settings.max_daily_reminders),
                    user_settings.quiet_start, user_settings.quiet_end,
                    user_settings.timezone, json.dumps(intervals),
                    int(user_settings.todo_reminders_enabled),
                    int(user_settings.daily_summary_enabled),
                    user_settings.daily_summary_time, _ts(local_now()),
                    user_settings.user_id,
                ),
            )
        logger.info("Settings updated for user %d", user_settings.user_id)

    def list_todo_reminder_users(self) -> list[int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id FROM user_settings WHERE todo_reminders_enabled = 1 ORDER BY user_id"
            ).fetchall()
        return [r["user_id"] for r in rows]

    def list_daily_summary_users(self) -> list[UserSettings]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM user_settings WHERE daily_summary_enabled = 1 ORDER BY user_id"
            ).fetchall()
        return [self._row_to_settings(r) for r in rows]

    def set_last_todo_message_id(self, user_id: int, message_id: int | None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE user_settings SET last_todo_message_id = ? WHERE user_id = ?",
                (message_id, user_id),
            )

    def set_last_daily_summary_date(self, user_id: int, sent_on: date) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE user_settings SET last_daily_summary_date = ? WHERE user_id = ?",
                (sent_on.isoformat(), user_id),
            )

    def get_daily_count(self, user_id: int, day: date) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT count FROM daily_reminder_count WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return row["count"] if row else 0

    def increment_daily_count(self, user_id: int, day: date) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO daily_reminder_count (user_id, date, count) VALUES (?, ?, 1)
                ON CONFLICT (user_id, date) DO UPDATE SET count = count + 1
                """,
                (user_id, day.isoformat()),
            )
