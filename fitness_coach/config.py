from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from fitness_coach.models import Language


load_dotenv()

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    database_url: str
    admin_chat_id: str | None
    mini_app_url: str
    timezone: ZoneInfo
    admin_language: Language
    session_ttl_minutes: int
    expiry_lookahead_days: int
    active_window_days: int
    subscription_period_days: int
    morning_reminder_cron: str
    afternoon_reminder_cron: str
    evening_reminder_cron: str
    weekly_progress_cron: str
    weekly_motivation_cron: str
    subscription_expiry_cron: str
    notify_window_minutes: int
    log_level: str = "INFO"


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _cron_env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip() or default
    if len(value.split()) != 5:
        raise ValueError(f"{name} must be a five-field crontab expression, got {value!r}")
    return value


def load_settings() -> Settings:
    token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    database_url = os.getenv("DATABASE_URL", "").strip()
    admin_chat_id = os.getenv("ADMIN_CHAT_ID", "").strip()

    if not token:
        raise ValueError("Missing TELEGRAM_BOT_TOKEN in .env")
    if not database_url:
        raise ValueError("Missing DATABASE_URL in .env")
    if admin_chat_id and not admin_chat_id.lstrip("-").isdigit():
        raise ValueError("ADMIN_CHAT_ID must be a numeric Telegram chat ID")

    tz_name = os.getenv("TIMEZONE", "Europe/Moscow").strip()
    try:
        timezone = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        raise ValueError(f"Unknown TIMEZONE {tz_name!r}") from None

    admin_language = os.getenv("ADMIN_LANGUAGE", Language.RU.value).strip().lower()
    if admin_language not in {lang.value for lang in Language}:
        raise ValueError("ADMIN_LANGUAGE must be one of: ru, en")

    return Settings(
        telegram_bot_token=token,
        database_url=database_url,
        admin_chat_id=admin_chat_id or None,
        mini_app_url=os.getenv("MINI_APP_URL", "").strip(),
        timezone=timezone,
        admin_language=Language(admin_language),
        session_ttl_minutes=_int_env("SESSION_TTL_MINUTES", 24 * 60),
        expiry_lookahead_days=_int_env("EXPIRY_LOOKAHEAD_DAYS", 3),
        active_window_days=_int_env("ACTIVE_WINDOW_DAYS", 30),
        subscription_period_days=_int_env("SUBSCRIPTION_PERIOD_DAYS", 30),
        morning_reminder_cron=_cron_env("MORNING_REMINDER_CRON", "0 8 * * *"),
        afternoon_reminder_cron=_cron_env("AFTERNOON_REMINDER_CRON", "0 13 * * *"),
        evening_reminder_cron=_cron_env("EVENING_REMINDER_CRON", "0 18 * * *"),
        weekly_progress_cron=_cron_env("WEEKLY_PROGRESS_CRON", "0 19 * * sun"),
        weekly_motivation_cron=_cron_env("WEEKLY_MOTIVATION_CRON", "0 10 * * mon"),
        subscription_expiry_cron=_cron_env("SUBSCRIPTION_EXPIRY_CRON", "0 12 * * *"),
        notify_window_minutes=_int_env("NOTIFY_WINDOW_MINUTES", 15),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )


class _RedactToken(logging.Filter):
    def __init__(self, token: str) -> None:
        super().__init__()
        self._token = token

    def filter(self, record: logging.LogRecord) -> bool:
        if self._token:
            message = record.getMessage()
            if self._token in message:
                record.msg = message.replace(self._token, "<redacted>")
                record.args = None
        return True


def configure_logging(level: str = "INFO", token: str = "") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    if token:
        redactor = _RedactToken(token)
        for handler in logging.getLogger().handlers:
            handler.addFilter(redactor)
