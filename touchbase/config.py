"""
Touchbase — Centralized configuration.

Loads all settings from .env and validates required keys.
Settings are built once by the entry point and passed explicitly into the
scheduler, the callback handler and the adapters; nothing reads them ambiently.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# .env lives at the project root (one level up from touchbase/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"

_REQUIRED_KEYS = ("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "SPREADSHEET_ID")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_CHAT_ID: str               # where the check-in message goes

    # Google Sheets roster
    SPREADSHEET_ID: str
    SHEET_NAME: str = "Sheet1"
    ROSTER_FIRST_ROW: int = 2           # row 1 holds the column headers
    ROSTER_LAST_ROW: int = 100
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN_PATH: str = "token.json"

    # Due-date policy
    BUFFER_DAYS: int = 3
    TIMEZONE: str = "America/New_York"

    # Security: empty means anyone in the chat may press the buttons
    ALLOWED_USER_IDS: list[int] = []

    # Webhook server
    WEBHOOK_URL: str = ""
    WEBHOOK_SECRET: str = ""
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 8080

    # Weekly check-in (day numbers follow python-telegram-bot: 0 = Sunday)
    CHECKIN_ENABLED: bool = True
    CHECKIN_WEEKDAY: int = 1
    CHECKIN_HOUR: int = 9

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("CHECKIN_ENABLED", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() not in ("0", "false", "no", "off", "")

    @field_validator("CHECKIN_WEEKDAY")
    @classmethod
    def check_weekday(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("CHECKIN_WEEKDAY must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("CHECKIN_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("CHECKIN_HOUR must be between 0 and 23")
        return v

    @field_validator("BUFFER_DAYS")
    @classmethod
    def check_buffer(cls, v: int) -> int:
        if v < 0:
            raise ValueError("BUFFER_DAYS must not be negative")
        return v

    @property
    def roster_window(self) -> tuple[int, int]:
        return self.ROSTER_FIRST_ROW, self.ROSTER_LAST_ROW


def load_settings(env_path: Path | None = None) -> Settings:
    """Load settings from the environment, exiting if a required key is missing."""
    load_dotenv(env_path or _ENV_PATH)

    for key in _REQUIRED_KEYS:
        value = os.getenv(key, "")
        if not value or value.startswith("your-"):
            print(f"ERROR: {key} is missing or not set in .env", file=sys.stderr)
            sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=os.environ["TELEGRAM_BOT_TOKEN"],
        TELEGRAM_CHAT_ID=os.environ["TELEGRAM_CHAT_ID"],
        SPREADSHEET_ID=os.environ["SPREADSHEET_ID"],
        SHEET_NAME=os.getenv("SHEET_NAME", "Sheet1"),
        ROSTER_FIRST_ROW=os.getenv("ROSTER_FIRST_ROW", "2"),
        ROSTER_LAST_ROW=os.getenv("ROSTER_LAST_ROW", "100"),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        GOOGLE_TOKEN_PATH=os.getenv("GOOGLE_TOKEN_PATH", "token.json"),
        BUFFER_DAYS=os.getenv("BUFFER_DAYS", "3"),
        TIMEZONE=os.getenv("TIMEZONE", "America/New_York"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        WEBHOOK_URL=os.getenv("WEBHOOK_URL", ""),
        WEBHOOK_SECRET=os.getenv("WEBHOOK_SECRET", ""),
        WEBHOOK_HOST=os.getenv("WEBHOOK_HOST", "0.0.0.0"),
        WEBHOOK_PORT=os.getenv("WEBHOOK_PORT", "8080"),
        CHECKIN_ENABLED=os.getenv("CHECKIN_ENABLED", "true"),
        CHECKIN_WEEKDAY=os.getenv("CHECKIN_WEEKDAY", "1"),
        CHECKIN_HOUR=os.getenv("CHECKIN_HOUR", "9"),
    )
