"""Tests for src.data.db — SQLite repositories."""

import dataclasses
from datetime import date, datetime, timedelta

import pytest

from src.data.models import ReminderIntervals

USER = 12345
OTHER = 999
NOW = datetime(2024, 5, 1, 12, 0)


# ---------------------------------------------------------------------------
# ReminderDB
# ---------------------------------------------------------------------------


class TestReminderDB:
    def test_add_and_get(self, reminder_db):
        r = reminder_db.add(
            USER, "Stretch", remind_at=NOW, dtstart=NOW,
            recurrence_rule="FREQ=DAILY", description="5 minutes", tags="health",
        )
        assert r.id is not None
        got = reminder_db.get(r.id, USER)
        assert got.message == "Stretch"
        assert got.remind_at == NOW
        assert got.dtstart == NOW
        assert got.enabled is True
        assert got.recurrence_rule == "FREQ=DAILY"
        assert got.created_at is not None

    def test_get_checks_owner(self, reminder_db):
        r = reminder_db.add(USER, "Mine", remind_at=NOW)
        assert reminder_db.get(r.id, OTHER) is None
        assert reminder_db.get_any(r.id).user_id == USER

    def test_list_for_user_orders_by_remind_at(self, reminder_db):
        reminder_db.add(USER, "later", remind_at=NOW + timedelta(hours=2))
        reminder_db.add(USER, "sooner", remind_at=NOW)
        reminder_db.add(USER, "unscheduled", remind_at=None)
        reminder_db.add(OTHER, "not mine", remind_at=NOW)
        assert [r.message for r in reminder_db.list_for_user(USER)] == ["sooner", "later", "unscheduled"]

    def test_delete(self, reminder_db):
        r = reminder_db.add(USER, "x", remind_at=NOW)
        assert not reminder_db.delete(r.id, OTHER)
        assert reminder_db.delete(r.id, USER)
        assert reminder_db.get(r.id, USER) is None

    def test_list_due_filters(self, reminder_db):
        due = reminder_db.add(USER, "due", remind_at=NOW - timedelta(minutes=1))
        reminder_db.add(USER, "future", remind_at=NOW + timedelta(minutes=1))
        reminder_db.add(USER, "disabled", remind_at=NOW - timedelta(minutes=1), enabled=False)
        acked = reminder_db.add(USER, "acked", remind_at=NOW - timedelta(minutes=1))
        reminder_db.set_acknowledged(acked.id, NOW)

        result = reminder_db.list_due(NOW, NOW - timedelta(seconds=60))
        assert [r.id for r in result] == [due.id]

    def test_list_due_respects_cooldown(self, reminder_db):
        r = reminder_db.add(USER, "nag", remind_at=NOW - timedelta(minutes=5))
        reminder_db.set_notified(r.id, NOW - timedelta(seconds=30), message_id=7)
        assert reminder_db.list_due(NOW, NOW - timedelta(seconds=60)) == []

        later = NOW + timedelta(seconds=31)
        assert len(reminder_db.list_due(later, later - timedelta(seconds=60))) == 1

    def test_set_notified_stores_message_id(self, reminder_db):
        r = reminder_db.add(USER, "x", remind_at=NOW)
        reminder_db.set_notified(r.id, NOW, message_id=42)
        got = reminder_db.get(r.id, USER)
        assert got.notified_at == NOW
        assert got.last_message_id == 42
        assert got.remind_at == NOW

    def test_reschedule_clears_cycle(self, reminder_db):
        r = reminder_db.add(USER, "x", remind_at=NOW)
        reminder_db.set_notified(r.id, NOW, message_id=42)
        reminder_db.set_acknowledged(r.id, NOW)
        reminder_db.reschedule(r.id, NOW + timedelta(days=1))

        got = reminder_db.get(r.id, USER)
        assert got.remind_at == NOW + timedelta(days=1)
        assert got.notified_at is None
        assert got.acknowledged_at is None
        assert got.last_message_id is None

    def test_set_enabled_checks_owner(self, reminder_db):
        r = reminder_db.add(USER, "x", remind_at=NOW)
        assert not reminder_db.set_enabled(r.id, OTHER, False)
        assert reminder_db.set_enabled(r.id, USER, False)
        assert reminder_db.get(r.id, USER).enabled is False

    def test_microseconds_dropped(self, reminder_db):
        r = reminder_db.add(USER, "x", remind_at=NOW.replace(microsecond=123456))
        assert reminder_db.get(r.id, USER).remind_at == NOW


# ---------------------------------------------------------------------------
# EventDB
# ---------------------------------------------------------------------------


class TestEventDB:
    def _add(self, event_db, at, minutes=30, user=USER, title="Sync"):
        return event_db.add(user, title, dtstart=at, next_occurrence=at, notification_minutes=minutes)

    def test_add_and_get(self, event_db):
        e = event_db.add(
            USER, "Dentist", dtstart=NOW, next_occurrence=NOW, duration=45,
            notification_minutes=15, recurrence_rule="", description="bring card",
        )
        got = event_db.get(e.id, USER)
        assert got.title == "Dentist"
        assert got.duration == 45
        assert got.notification_minutes == 15
        assert got.next_occurrence == NOW
        assert got.notified_at is None

    def test_negative_lead_time_clamped(self, event_db):
        e = self._add(event_db, NOW, minutes=-10)
        assert e.notification_minutes == 0

    def test_pending_notifications_window(self, event_db):
        in_window = self._add(event_db, NOW + timedelta(minutes=20))
        self._add(event_db, NOW + timedelta(minutes=40), title="too early")
        self._add(event_db, NOW - timedelta(minutes=1), title="already started")
        edge = self._add(event_db, NOW + timedelta(minutes=30), title="window opens now")

        ids = {e.id for e in event_db.list_pending_notifications(NOW)}
        assert ids == {in_window.id, edge.id}

    def test_pending_excludes_notified(self, event_db):
        e = self._add(event_db, NOW + timedelta(minutes=10))
        event_db.set_notified(e.id, NOW)
        assert event_db.list_pending_notifications(NOW) == []

    def test_pending_excludes_start_instant(self, event_db):
        self._add(event_db, NOW)
        assert event_db.list_pending_notifications(NOW) == []

    def test_list_elapsed(self, event_db):
        past = self._add(event_db, NOW - timedelta(minutes=10))
        at_now = self._add(event_db, NOW)
        self._add(event_db, NOW + timedelta(minutes=10))
        event_db.add(USER, "cleared", dtstart=NOW - timedelta(days=1), next_occurrence=None)

        assert [e.id for e in event_db.list_elapsed(NOW)] == [past.id, at_now.id]

    def test_set_next_occurrence_clears_notified(self, event_db):
        e = self._add(event_db, NOW)
        event_db.set_notified(e.id, NOW)
        event_db.set_next_occurrence(e.id, NOW + timedelta(days=7))
        got = event_db.get(e.id, USER)
        assert got.next_occurrence == NOW + timedelta(days=7)
        assert got.notified_at is None

    def test_list_between(self, event_db):
        day = datetime(2024, 5, 1)
        inside = self._add(event_db, day + timedelta(hours=9))
        self._add(event_db, day + timedelta(days=1, hours=9))
        self._add(event_db, day + timedelta(hours=9), user=OTHER)
        result = event_db.list_between(USER, day, day + timedelta(days=1))
        assert [e.id for e in result] == [inside.id]

    def test_delete(self, event_db):
        e = self._add(event_db, NOW)
        assert not event_db.delete(e.id, OTHER)
        assert event_db.delete(e.id, USER)
        assert event_db.list_for_user(USER) == []


# ---------------------------------------------------------------------------
# TodoDB
# ---------------------------------------------------------------------------


class TestTodoDB:
    def test_add_clamps_priority(self, todo_db):
        assert todo_db.add(USER, "x", priority=9).priority == 5
        assert todo_db.add(USER, "y", priority=-1).priority == 0

    def test_list_for_user_ordering(self, todo_db):
        todo_db.add(USER, "low", priority=1, due_time=NOW)
        todo_db.add(USER, "high late", priority=5, due_time=NOW + timedelta(days=2))
        todo_db.add(USER, "high soon", priority=5, due_time=NOW + timedelta(hours=1))
        todo_db.add(USER, "high no due", priority=5)
        titles = [t.title for t in todo_db.list_for_user(USER)]
        assert titles == ["high soon", "high late", "high no due", "low"]

    def test_complete_hides_from_default_listing(self, todo_db):
        t = todo_db.add(USER, "x")
        assert todo_db.complete(t.id, USER, NOW)
        assert not todo_db.complete(t.id, USER, NOW)
        assert todo_db.list_for_user(USER) == []
        assert len(todo_db.list_for_user(USER, include_completed=True)) == 1

    def test_complete_checks_owner(self, todo_db):
        t = todo_db.add(USER, "x")
        assert not todo_db.complete(t.id, OTHER, NOW)

    def test_list_for_notification_horizon(self, todo_db):
        overdue = todo_db.add(USER, "overdue", due_time=NOW - timedelta(days=2))
        week = todo_db.add(USER, "in 6 days", due_time=NOW + timedelta(days=6))
        todo_db.add(USER, "in 8 days", due_time=NOW + timedelta(days=8))
        todo_db.add(USER, "no due")
        done = todo_db.add(USER, "done", due_time=NOW)
        todo_db.complete(done.id, USER, NOW)

        ids = [t.id for t in todo_db.list_for_notification(USER, NOW)]
        assert ids == [overdue.id, week.id]

    def test_set_last_notified_many(self, todo_db):
        a = todo_db.add(USER, "a", due_time=NOW)
        b = todo_db.add(USER, "b", due_time=NOW)
        c = todo_db.add(USER, "c", due_time=NOW)
        todo_db.set_last_notified_many([a.id, b.id], NOW)
        assert todo_db.get(a.id, USER).last_notified_at == NOW
        assert todo_db.get(b.id, USER).last_notified_at == NOW
        assert todo_db.get(c.id, USER).last_notified_at is None

    def test_set_last_notified_many_empty(self, todo_db):
        todo_db.set_last_notified_many([], NOW)

    def test_delete(self, todo_db):
        t = todo_db.add(USER, "x")
        assert todo_db.delete(t.id, USER)
        assert todo_db.get(t.id, USER) is None


# ---------------------------------------------------------------------------
# UserSettingsDB
# ---------------------------------------------------------------------------


class TestUserSettingsDB:
    def test_get_or_create_defaults(self, settings_db):
        s = settings_db.get_or_create(USER)
        assert s.max_daily_reminders == 10
        assert (s.quiet_start, s.quiet_end) == ("22:00", "08:00")
        assert s.timezone == "Asia/Taipei"
        assert s.reminder_intervals == ReminderIntervals()
        assert s.todo_reminders_enabled is True
        assert s.daily_summary_enabled is True
        assert s.daily_summary_time == "08:00"
        assert s.last_daily_summary_date is None

    def test_get_missing(self, settings_db):
        assert settings_db.get(USER) is None

    def test_get_or_create_is_idempotent(self, settings_db):
        settings_db.get_or_create(USER)
        settings_db.set_last_todo_message_id(USER, 5)
        assert settings_db.get_or_create(USER).last_todo_message_id == 5

    def test_update_round_trip(self, settings_db):
        s = settings_db.get_or_create(USER)
        settings_db.update(dataclasses.replace(
            s,
            max_daily_reminders=3,
            quiet_start="23:00",
            quiet_end="07:00",
            reminder_intervals=ReminderIntervals(overdue=10, urgent=0, soon=60, normal=240),
            todo_reminders_enabled=False,
            daily_summary_time="07:30",
        ))
        got = settings_db.get(USER)
        assert got.max_daily_reminders == 3
        assert got.quiet_start == "23:00"
        assert got.reminder_intervals.urgent == 0
        assert got.reminder_intervals.soon == 60
        assert got.todo_reminders_enabled is False
        assert got.daily_summary_time == "07:30"

    def test_update_rejects_negative_interval(self, settings_db):
        s = settings_db.get_or_create(USER)
        with pytest.raises(ValueError):
            settings_db.update(dataclasses.replace(s, reminder_intervals=ReminderIntervals(soon=-1)))

    def test_user_lists(self, settings_db):
        settings_db.get_or_create(1)
        s2 = settings_db.get_or_create(2)
        settings_db.update(dataclasses.replace(s2, todo_reminders_enabled=False, daily_summary_enabled=False))

        assert settings_db.list_todo_reminder_users() == [1]
        assert [s.user_id for s in settings_db.list_daily_summary_users()] == [1]

    def test_last_daily_summary_date(self, settings_db):
        settings_db.get_or_create(USER)
        settings_db.set_last_daily_summary_date(USER, date(2024, 5, 1))
        assert settings_db.get(USER).last_daily_summary_date == date(2024, 5, 1)

    def test_daily_count(self, settings_db):
        day = date(2024, 5, 1)
        assert settings_db.get_daily_count(USER, day) == 0
        settings_db.increment_daily_count(USER, day)
        settings_db.increment_daily_count(USER, day)
        assert settings_db.get_daily_count(USER, day) == 2
        assert settings_db.get_daily_count(USER, date(2024, 5, 2)) == 0
