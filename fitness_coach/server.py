from __future__ import annotations

from telegram import Update

from fitness_coach.bot import FitnessBot
from fitness_coach.config import configure_logging, load_settings
from fitness_coach.db import FitnessDB
from fitness_coach.scheduler import FiringReport

_bot_instance: FitnessBot | None = None
_initialized = False


def get_bot_instance() -> FitnessBot:
    global _bot_instance
    if _bot_instance is None:
        settings = load_settings()
        configure_logging(settings.log_level, settings.telegram_bot_token)
        _bot_instance = FitnessBot(
            settings=settings,
            repository=FitnessDB(settings.database_url),
            run_scheduler=False,
        )
    return _bot_instance


async def ensure_initialized() -> FitnessBot:
    global _initialized
    bot = get_bot_instance()
    if not _initialized:
        await bot.app.initialize()
        _initialized = True
    return bot


async def process_telegram_update(payload: dict) -> None:
    bot = await ensure_initialized()
    update = Update.de_json(payload, bot.app.bot)
    await bot.app.process_update(update)


async def send_due_notifications_once() -> list[FiringReport]:
    bot = await ensure_initialized()
    return await bot.send_due_notifications()
