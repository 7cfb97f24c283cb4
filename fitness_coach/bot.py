from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from fitness_coach.config import Settings
from fitness_coach.conversation import ConversationEngine, InMemorySessionStore, SessionStore
from fitness_coach.handlers import COMMAND_MENU, BotHandlers, HandlerConfig
from fitness_coach.interfaces import UserRepository
from fitness_coach.notifications import NotificationSettings, register_default_triggers
from fitness_coach.programs import OnboardingProgram, SupportProgram
from fitness_coach.relay import AdminRelay
from fitness_coach.router import CommandRouter
from fitness_coach.scheduler import FiringReport, NotificationScheduler
from fitness_coach.transport import TelegramTransport, update_from_telegram

logger = logging.getLogger(__name__)


def notification_settings(settings: Settings) -> NotificationSettings:
    return NotificationSettings(
        morning_cron=settings.morning_reminder_cron,
        afternoon_cron=settings.afternoon_reminder_cron,
        evening_cron=settings.evening_reminder_cron,
        weekly_progress_cron=settings.weekly_progress_cron,
        weekly_motivation_cron=settings.weekly_motivation_cron,
        subscription_expiry_cron=settings.subscription_expiry_cron,
        expiry_lookahead_days=settings.expiry_lookahead_days,
        active_window_days=settings.active_window_days,
    )


class FitnessBot:
    def __init__(
        self,
        settings: Settings,
        repository: UserRepository,
        session_store: SessionStore | None = None,
        run_scheduler: bool = True,
    ) -> None:
        self._settings = settings
        self._run_scheduler = run_scheduler
        self._scheduler_task: asyncio.Task | None = None

        builder = Application.builder().token(settings.telegram_bot_token)
        builder = builder.post_init(self._post_init).post_stop(self._post_stop)
        self.app = builder.build()

        self.transport = TelegramTransport(self.app.bot)
        self.relay = AdminRelay(self.transport, settings.admin_chat_id, settings.admin_language)
        self.engine = ConversationEngine(
            session_store or InMemorySessionStore(),
            [
                OnboardingProgram(repository, self.transport, self.relay, settings.mini_app_url),
                SupportProgram(self.transport, self.relay),
            ],
            session_ttl=timedelta(minutes=settings.session_ttl_minutes),
        )
        self.router = CommandRouter(repository, self.transport, self.engine)
        BotHandlers(
            repository,
            self.transport,
            self.engine,
            self.relay,
            HandlerConfig(
                mini_app_url=settings.mini_app_url,
                subscription_period_days=settings.subscription_period_days,
            ),
        ).register(self.router)

        self.scheduler = NotificationScheduler(repository, self.transport, settings.timezone)
        register_default_triggers(self.scheduler, notification_settings(settings))

        self._register_handlers()

    def _register_handlers(self) -> None:
        self.app.add_handler(CallbackQueryHandler(self.on_button))
        self.app.add_handler(MessageHandler(filters.TEXT, self.on_message))
        self.app.add_error_handler(self.on_error)

    async def on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        inbound = update_from_telegram(update)
        if inbound is None:
            logger.debug("Ignoring update %s without a sender", update.update_id)
            return
        await self.router.dispatch(inbound)

    async def on_button(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        await query.answer()
        inbound = update_from_telegram(update)
        if inbound is None:
            return
        await self.router.dispatch(inbound)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Unhandled error while processing update %r", update, exc_info=context.error)

    async def _post_init(self, app: Application) -> None:
        await self.transport.set_command_menu(COMMAND_MENU)
        if self._run_scheduler:
            self._scheduler_task = asyncio.get_running_loop().create_task(
                self.scheduler.run_forever(), name="notification-scheduler"
            )

    async def _post_stop(self, app: Application) -> None:
        if self._scheduler_task is None:
            return
        self.scheduler.stop()
        try:
            await asyncio.wait_for(self._scheduler_task, timeout=5)
        except asyncio.TimeoutError:
            self._scheduler_task.cancel()
        self._scheduler_task = None

    async def send_due_notifications(self) -> list[FiringReport]:
        window = timedelta(minutes=self._settings.notify_window_minutes)
        return await self.scheduler.run_due(window=window)

    def run(self) -> None:
        self.app.run_polling(allowed_updates=Update.ALL_TYPES)
