"""
LifeLine Assistant — Entry Point.

Single entry point: `python main.py` starts the Telegram bot and its
notification scheduler.
"""

import logging

from src.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# Polling requests are logged per call at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

from src.bot.telegram_bot import main

if __name__ == "__main__":
    main()
