from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fitness_coach.conversation import ConversationEngine
from fitness_coach.errors import SessionAlreadyActiveError
from fitness_coach.interfaces import ChatTransport, UserRepository
from fitness_coach.messages import MessageKey, goal_label, t, tier_label, time_label
from fitness_coach.models import (
    Button,
    Language,
    OutboundMessage,
    SubscriptionTier,
)
from fitness_coach.programs import ONBOARDING, SUPPORT, app_button
from fitness_coach.relay import AdminRelay, EscalationKind
from fitness_coach.router import CommandRequest, CommandRouter

logger = logging.getLogger(__name__)

MENU_TRIGGERS = {"hi", "hello", "hey", "menu", "start", "привет", "меню", "начать"}

# Command menu shown by the Telegram client; "reply" is staff-only and left out.
COMMAND_MENU: list[tuple[str, str]] = [
    ("start", "Start the bot / Запустить бота"),
    ("menu", "Main menu / Главное меню"),
    ("profile", "Your profile / Ваш профиль"),
    ("subscribe", "Subscription / Подписка"),
    ("language", "Language / Язык"),
    ("support", "Support / Поддержка"),
    ("cancel", "Cancel / Отмена"),
    ("help", "Help / Помощь"),
]


@dataclass(frozen=True)
class HandlerConfig:
    mini_app_url: str = ""
    subscription_period_days: int = 30


class BotHandlers:
    def __init__(
        self,
        repository: UserRepository,
        transport: ChatTransport,
        engine: ConversationEngine,
        relay: AdminRelay,
        config: HandlerConfig = HandlerConfig(),
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._engine = engine
        self._relay = relay
        self._config = config

    def register(self, router: CommandRouter) -> None:
        router.register_command("start", self.start)
        router.register_command("help", self.help)
        router.register_command("menu", self.menu)
        router.register_command("profile", self.profile)
        router.register_command("subscribe", self.subscribe)
        router.register_command("support", self.support)
        router.register_command("reply", self.staff_reply)
        router.register_command("cancel", self.cancel, always_available=True)
        router.register_command("language", self.choose_language, always_available=True)
        router.register_callback("language_", self.set_language, prefix=True, always_available=True)
        router.register_callback("plan_", self.select_plan, prefix=True)
        router.register_callback("workout_", self.workout_action, prefix=True)
        router.register_callback("open_app", self.open_app)
        router.register_callback("menu", self.menu)
        router.register_callback("subscribe", self.subscribe)
        router.register_callback("support", self.support)
        router.register_callback("individual_plan", self.individual_plan)
        router.register_text_fallback(self.plain_text)

    async def _reply(self, request: CommandRequest, message: OutboundMessage | str) -> None:
        if isinstance(message, str):
            message = OutboundMessage(message)
        await self._transport.send_message(request.chat_id, message)

    @staticmethod
    def _language(request: CommandRequest) -> Language | None:
        return request.user.language if request.user else None

    def _main_menu(self, language: Language | None) -> OutboundMessage:
        return OutboundMessage.with_buttons(
            t(language, MessageKey.MAIN_MENU),
            [app_button(language, self._config.mini_app_url)],
            [
                Button(t(language, MessageKey.BUTTON_SUBSCRIBE), callback_data="subscribe"),
                Button(t(language, MessageKey.BUTTON_SUPPORT), callback_data="support"),
            ],
            [Button(t(language, MessageKey.BUTTON_INDIVIDUAL_PLAN), callback_data="individual_plan")],
        )

    async def _require_user(self, request: CommandRequest) -> bool:
        if request.user is not None:
            return True
        await self._reply(request, t(None, MessageKey.NOT_REGISTERED))
        return False

    async def start(self, request: CommandRequest) -> None:
        user = request.user
        if user is None:
            await self._engine.enter(request.recipient_id, ONBOARDING, request.update)
            return
        await self._reply(
            request,
            OutboundMessage.with_buttons(
                t(user.language, MessageKey.WELCOME_BACK, name=user.name),
                [app_button(user.language, self._config.mini_app_url)],
            ),
        )

    async def help(self, request: CommandRequest) -> None:
        await self._reply(request, t(self._language(request), MessageKey.HELP))

    async def menu(self, request: CommandRequest) -> None:
        if not await self._require_user(request):
            return
        await self._reply(request, self._main_menu(self._language(request)))

    async def plain_text(self, request: CommandRequest) -> None:
        text = request.args[0] if request.args else ""
        if text.strip().lower() in MENU_TRIGGERS and request.user is not None:
            await self._reply(request, self._main_menu(request.user.language))

    async def profile(self, request: CommandRequest) -> None:
        if not await self._require_user(request):
            return
        user = request.user
        language = user.language
        expiry = (
            user.subscription_expires_at.date().isoformat()
            if user.subscription_expires_at
            else t(language, MessageKey.NO_EXPIRY)
        )
        await self._reply(
            request,
            t(
                language,
                MessageKey.PROFILE,
                name=user.name,
                goal=goal_label(language, user.goal),
                workout_time=time_label(language, user.workout_time),
                tier=tier_label(language, user.subscription),
                expiry=expiry,
            ),
        )

    async def subscribe(self, request: CommandRequest) -> None:
        if not await self._require_user(request):
            return
        language = request.user.language
        await self._reply(
            request,
            OutboundMessage.with_buttons(
                t(language, MessageKey.SUBSCRIBE_OPTIONS, tier=tier_label(language, request.user.subscription)),
                [Button(t(language, MessageKey.BUTTON_PLAN_MID), callback_data=f"plan_{SubscriptionTier.MID.value}")],
                [Button(t(language, MessageKey.BUTTON_PLAN_FULL), callback_data=f"plan_{SubscriptionTier.FULL.value}")],
            ),
        )

    async def select_plan(self, request: CommandRequest) -> None:
        """Activate a paid tier. Payment is simulated: the plan is granted immediately."""
        if not await self._require_user(request):
            return
        try:
            tier = SubscriptionTier(request.args[0] if request.args else "")
        except ValueError:
            logger.debug("Ignoring unknown plan callback %r", request.update.callback_data)
            return
        if tier is SubscriptionTier.NONE:
            return

        user = request.user
        now = datetime.now(timezone.utc)
        # Renewing before expiry extends from the current end date.
        base = user.subscription_expires_at if (
            user.subscription is tier and user.subscription_expires_at and user.subscription_expires_at > now
        ) else now
        expires_at = base + timedelta(days=self._config.subscription_period_days)
        self._repository.update_subscription(user.user_id, tier, expires_at)
        logger.info("User %s subscribed to %s until %s", user.user_id, tier.value, expires_at.isoformat())

        await self._reply(
            request,
            t(
                user.language,
                MessageKey.SUBSCRIPTION_ACTIVATED,
                tier=tier_label(user.language, tier),
                expiry=expires_at.date().isoformat(),
            ),
        )
        await self._relay.relay(
            EscalationKind.SUBSCRIPTION_CHANGED,
            {
                "user_id": user.user_id,
                "name": user.name,
                "tier": tier.value,
                "expiry": expires_at.date().isoformat(),
            },
        )

    async def individual_plan(self, request: CommandRequest) -> None:
        if not await self._require_user(request):
            return
        await self._relay.relay(
            EscalationKind.INDIVIDUAL_PLAN_REQUEST,
            {
                "user_id": request.recipient_id,
                "name": request.user.name,
                "username": request.update.username,
            },
        )
        await self._reply(request, t(request.user.language, MessageKey.INDIVIDUAL_PLAN_REQUESTED))

    async def support(self, request: CommandRequest) -> None:
        user = request.user
        answers = {
            "language": (user.language if user else _language_from_client(request)).value,
            "name": user.name if user else request.update.display_name,
        }
        try:
            await self._engine.enter(request.recipient_id, SUPPORT, request.update, answers=answers)
        except SessionAlreadyActiveError:
            logger.debug("Support requested by %s while a session is active", request.recipient_id)

    async def cancel(self, request: CommandRequest) -> None:
        session = self._engine.cancel(request.recipient_id)
        language = self._language(request)
        if session is None:
            await self._reply(request, t(language, MessageKey.NOTHING_TO_CANCEL))
            return
        if session.program == SUPPORT:
            language = language or Language(session.answers.get("language", Language.RU.value))
            await self._reply(request, t(language, MessageKey.SUPPORT_CLOSED))
            return
        await self._reply(request, t(language, MessageKey.SESSION_CANCELLED))

    async def choose_language(self, request: CommandRequest) -> None:
        await self._reply(
            request,
            OutboundMessage.with_buttons(
                t(self._language(request), MessageKey.CHOOSE_LANGUAGE),
                [Button("Русский", callback_data=f"language_{Language.RU.value}")],
                [Button("English", callback_data=f"language_{Language.EN.value}")],
            ),
        )

    async def set_language(self, request: CommandRequest) -> None:
        try:
            language = Language(request.args[0] if request.args else "")
        except ValueError:
            logger.debug("Ignoring unknown language callback %r", request.update.callback_data)
            return
        if request.user is None:
            # Visitors without a profile pick their language during onboarding.
            await self._reply(request, t(language, MessageKey.NOT_REGISTERED))
            return
        self._repository.update_user(request.recipient_id, language=language)
        await self._reply(request, t(language, MessageKey.LANGUAGE_CHANGED))

    async def workout_action(self, request: CommandRequest) -> None:
        action = request.args[0] if request.args else ""
        language = self._language(request)
        if action == "done":
            url = self._config.mini_app_url or "-"
            await self._reply(request, t(language, MessageKey.WORKOUT_DONE_ACK, url=url))
        elif action == "skip":
            await self._reply(request, t(language, MessageKey.WORKOUT_SKIP_ACK))
        else:
            logger.debug("Ignoring unknown workout action %r", action)

    async def open_app(self, request: CommandRequest) -> None:
        language = self._language(request)
        if not self._config.mini_app_url:
            await self._reply(request, t(language, MessageKey.APP_UNAVAILABLE))
            return
        await self._reply(request, t(language, MessageKey.OPEN_APP_LINK, url=self._config.mini_app_url))

    async def staff_reply(self, request: CommandRequest) -> None:
        """`/reply <user_id> <text>` from the staff chat."""
        if not self._relay.is_admin(request.chat_id):
            logger.debug("Ignoring /reply from %s outside the staff chat", request.recipient_id)
            return
        staff_language = self._relay.language
        if len(request.args) < 2 or not request.args[0].lstrip("-").isdigit():
            await self._relay.notify_staff(t(staff_language, MessageKey.STAFF_REPLY_USAGE))
            return

        target_id = request.args[0]
        text = request.update.text.split(maxsplit=2)[2]
        target = self._repository.get_user_by_id(target_id)
        delivered = await self._relay.reply_to_user(target_id, text, target.language if target else None)
        key = MessageKey.STAFF_REPLY_SENT if delivered else MessageKey.STAFF_REPLY_FAILED
        await self._relay.notify_staff(t(staff_language, key, user_id=target_id))


def _language_from_client(request: CommandRequest) -> Language:
    if request.update.language_code.startswith(Language.EN.value):
        return Language.EN
    return Language.RU
