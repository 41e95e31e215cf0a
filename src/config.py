"""
LifeLine Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM, provider-agnostic (gemini, anthropic, openai, cohere, openrouter).
    # Free-text parsing is disabled when no key is configured.
    LLM_PROVIDER: str = "openrouter"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str = "https://openrouter.ai/api/v1"

    # SQLite
    DATABASE_PATH: str = "data/lifeline.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Wall-clock zone for every stored timestamp
    TIMEZONE: str = "Asia/Taipei"

    # Scheduler
    SCHEDULER_INTERVAL_SECONDS: int = 60
    SCHEDULER_STARTUP_DELAY_SECONDS: int = 2
    REMINDER_COOLDOWN_SECONDS: int = 60

    # Pending LLM confirmations
    SESSION_TTL_SECONDS: int = 600

    LOG_LEVEL: str = "INFO"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator(
        "SCHEDULER_INTERVAL_SECONDS",
        "SCHEDULER_STARTUP_DELAY_SECONDS",
        "REMINDER_COOLDOWN_SECONDS",
        "SESSION_TTL_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_seconds(cls, v: str | int) -> int:
        value = int(v)
        if value < 0:
            raise ValueError("durations must be non-negative")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openrouter"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=os.getenv("LLM_API_KEY", ""),
        LLM_BASE_URL=os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/lifeline.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Taipei"),
        SCHEDULER_INTERVAL_SECONDS=os.getenv("SCHEDULER_INTERVAL_SECONDS", "60"),
        SCHEDULER_STARTUP_DELAY_SECONDS=os.getenv("SCHEDULER_STARTUP_DELAY_SECONDS", "2"),
        REMINDER_COOLDOWN_SECONDS=os.getenv("REMINDER_COOLDOWN_SECONDS", "60"),
        SESSION_TTL_SECONDS=os.getenv("SESSION_TTL_SECONDS", "600"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
