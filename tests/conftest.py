"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides repositories backed by a temp SQLite file.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openrouter")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ["TIMEZONE"] = "Asia/Taipei"

import pytest

USER_ID = 12345


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_lifeline.db")


@pytest.fixture
def reminder_db(tmp_db_path):
    from src.data.db import ReminderDB
    return ReminderDB(db_path=tmp_db_path)


@pytest.fixture
def event_db(tmp_db_path):
    from src.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def todo_db(tmp_db_path):
    from src.data.db import TodoDB
    return TodoDB(db_path=tmp_db_path)


@pytest.fixture
def settings_db(tmp_db_path):
    from src.data.db import UserSettingsDB
    return UserSettingsDB(db_path=tmp_db_path, default_timezone="Asia/Taipei")


@pytest.fixture
def advancer(reminder_db, event_db, todo_db, settings_db):
    from src.core.advancer import OccurrenceAdvancer
    return OccurrenceAdvancer(reminder_db, event_db, todo_db, settings_db)


@pytest.fixture
def detector(reminder_db, event_db, todo_db, settings_db):
    from datetime import timedelta
    from src.core.due_detector import DueDetector
    return DueDetector(
        reminder_db, event_db, todo_db, settings_db,
        reminder_cooldown=timedelta(seconds=60),
    )
