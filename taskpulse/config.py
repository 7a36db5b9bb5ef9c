"""Configuration management from environment variables."""

import os
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from taskpulse.utils.constants import (
    DEFAULT_INSTANCE_COUNT,
    DEFAULT_TIMEZONE,
    DEFAULT_WORKING_HOURS_END,
    DEFAULT_WORKING_HOURS_START,
)

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_CHAT_ID: str = os.getenv("TELEGRAM_CHAT_ID", "")

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/taskpulse.db"))

    # Timezone used to read times typed into the bot
    TIMEZONE: str = os.getenv("TIMEZONE", DEFAULT_TIMEZONE)

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Scheduling
    DEFAULT_INSTANCE_COUNT: int = int(
        os.getenv("DEFAULT_INSTANCE_COUNT", str(DEFAULT_INSTANCE_COUNT))
    )
    WORKING_HOURS_START: str = os.getenv("WORKING_HOURS_START", DEFAULT_WORKING_HOURS_START)
    WORKING_HOURS_END: str = os.getenv("WORKING_HOURS_END", DEFAULT_WORKING_HOURS_END)
    OVERDUE_CHECK_INTERVAL: int = int(os.getenv("OVERDUE_CHECK_INTERVAL", "300"))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.TELEGRAM_BOT_TOKEN:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable is required")

        if not cls.TELEGRAM_CHAT_ID:
            raise ValueError("TELEGRAM_CHAT_ID environment variable is required")

        if cls.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {cls.LOG_LEVEL}")

        try:
            ZoneInfo(cls.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"TIMEZONE must be an IANA timezone name, got {cls.TIMEZONE}")

        for name in ("WORKING_HOURS_START", "WORKING_HOURS_END"):
            try:
                time.fromisoformat(getattr(cls, name))
            except ValueError:
                raise ValueError(f"{name} must be HH:MM, got {getattr(cls, name)}")

        if cls.DEFAULT_INSTANCE_COUNT < 1:
            raise ValueError("DEFAULT_INSTANCE_COUNT must be at least 1")

        if cls.OVERDUE_CHECK_INTERVAL < 1:
            raise ValueError("OVERDUE_CHECK_INTERVAL must be at least 1 second")

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
