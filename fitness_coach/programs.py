from __future__ import annotations

import logging
import re

from fitness_coach.conversation import ConversationProgram, ConversationSession
from fitness_coach.errors import RepositoryError, TransportError
from fitness_coach.interfaces import ChatTransport, UserRepository
from fitness_coach.messages import MessageKey, goal_label, t
from fitness_coach.models import (
    DEFAULT_LANGUAGE,
    Button,
    Goal,
    InboundUpdate,
    Language,
    OutboundMessage,
    SubscriptionTier,
    User,
)
from fitness_coach.relay import AdminRelay, EscalationKind

logger = logging.getLogger(__name__)

ONBOARDING = "onboarding"
SUPPORT = "support"

AWAIT_NAME = "await_name"
AWAIT_GOAL = "await_goal"
AWAIT_LANGUAGE = "await_language"
PERSIST = "persist"
SUPPORT_CHAT = "chat"

GOAL_CALLBACK_PREFIX = "goal_"
LANG_CALLBACK_PREFIX = "lang_"
MAX_NAME_LENGTH = 64
DEFAULT_GOAL = Goal.MAINTENANCE

# Word-start hints for typed answers, checked in order.
GOAL_HINTS: tuple[tuple[Goal, tuple[str, ...]], ...] = (
    (Goal.MAINTENANCE, ("maint", "keep", "shape", "tone", "поддерж", "форм", "тонус")),
    (Goal.MUSCLE_GAIN, ("muscle", "gain", "mass", "bulk", "мышц", "масс", "набор")),
    (Goal.WEIGHT_LOSS, ("weight", "lose", "loss", "slim", "fat", "похуд", "сброс", "вес", "жир")),
)
ENGLISH_HINTS = ("english", "eng", "англ")


def _mentions(text: str, hints: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(hint)}", text) for hint in hints)


def parse_goal(update: InboundUpdate) -> Goal:
    data = update.callback_data or ""
    if data.startswith(GOAL_CALLBACK_PREFIX):
        try:
            return Goal(data[len(GOAL_CALLBACK_PREFIX):])
        except ValueError:
            return DEFAULT_GOAL
    text = (update.text or "").strip().lower()
    for goal, hints in GOAL_HINTS:
        if _mentions(text, hints):
            return goal
    return DEFAULT_GOAL


def parse_language(update: InboundUpdate) -> Language:
    data = update.callback_data or ""
    if data.startswith(LANG_CALLBACK_PREFIX):
        return Language.EN if data == f"{LANG_CALLBACK_PREFIX}{Language.EN.value}" else Language.RU
    text = (update.text or "").strip().lower()
    if _mentions(text, ENGLISH_HINTS):
        return Language.EN
    return DEFAULT_LANGUAGE


def app_button(language: Language, mini_app_url: str) -> Button:
    label = t(language, MessageKey.BUTTON_OPEN_APP)
    if mini_app_url.startswith("https://"):
        return Button(label, url=mini_app_url)
    return Button(label, callback_data="open_app")


class OnboardingProgram(ConversationProgram):
    """Start -> AwaitName -> AwaitGoal -> AwaitLanguage -> Persist -> Complete.

    The user record is written only in the Persist step. A failed write keeps
    the session parked at Persist, and whatever the user sends next retries it.
    """

    name = ONBOARDING
    first_step = AWAIT_NAME

    def __init__(
        self,
        repository: UserRepository,
        transport: ChatTransport,
        relay: AdminRelay,
        mini_app_url: str = "",
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._relay = relay
        self._mini_app_url = mini_app_url

    @staticmethod
    def _prompt_language(session: ConversationSession) -> Language:
        return Language(session.answers.get("prompt_language", DEFAULT_LANGUAGE.value))

    async def _say(self, session: ConversationSession, message: OutboundMessage | str) -> None:
        if isinstance(message, str):
            message = OutboundMessage(message)
        await self._transport.send_message(session.recipient_id, message)

    def _goal_keyboard(self, language: Language) -> OutboundMessage:
        return OutboundMessage.with_buttons(
            t(language, MessageKey.ASK_GOAL),
            *[
                [Button(goal_label(language, goal), callback_data=f"{GOAL_CALLBACK_PREFIX}{goal.value}")]
                for goal in Goal
            ],
        )

    @staticmethod
    def _language_keyboard() -> OutboundMessage:
        return OutboundMessage.with_buttons(
            t(DEFAULT_LANGUAGE, MessageKey.ASK_LANGUAGE),
            [Button("Русский", callback_data=f"{LANG_CALLBACK_PREFIX}{Language.RU.value}")],
            [Button("English", callback_data=f"{LANG_CALLBACK_PREFIX}{Language.EN.value}")],
        )

    async def begin(self, session: ConversationSession, update: InboundUpdate | None) -> bool:
        prompt_language = DEFAULT_LANGUAGE
        if update is not None and update.language_code.startswith(Language.EN.value):
            prompt_language = Language.EN
        session.answers["prompt_language"] = prompt_language.value
        await self._say(session, t(prompt_language, MessageKey.GREETING))
        await self._say(session, t(prompt_language, MessageKey.ASK_NAME))
        return False

    async def step(self, session: ConversationSession, update: InboundUpdate) -> bool:
        if session.step == AWAIT_NAME:
            await self._take_name(session, update)
            return False
        if session.step == AWAIT_GOAL:
            await self._take_goal(session, update)
            return False
        if session.step == AWAIT_LANGUAGE:
            session.answers["language"] = parse_language(update).value
            session.step = PERSIST
            return await self._persist(session)
        if session.step == PERSIST:
            return await self._persist(session)
        logger.error("Onboarding for %s stuck at unknown step %s", session.recipient_id, session.step)
        return True

    async def _take_name(self, session: ConversationSession, update: InboundUpdate) -> None:
        language = self._prompt_language(session)
        name = ""
        if not update.is_callback and update.command is None:
            name = (update.text or "").strip()
        if not name:
            await self._say(session, t(language, MessageKey.NAME_REQUIRED))
            return
        session.answers["name"] = name[:MAX_NAME_LENGTH]
        session.step = AWAIT_GOAL
        await self._say(session, self._goal_keyboard(language))

    async def _take_goal(self, session: ConversationSession, update: InboundUpdate) -> None:
        language = self._prompt_language(session)
        goal = parse_goal(update)
        session.answers["goal"] = goal.value
        session.step = AWAIT_LANGUAGE
        await self._say(session, t(language, MessageKey.GOAL_ACK, goal=goal_label(language, goal)))
        await self._say(session, self._language_keyboard())

    async def _persist(self, session: ConversationSession) -> bool:
        language = Language(session.answers["language"])
        user = User(
            user_id=session.recipient_id,
            name=str(session.answers["name"]),
            language=language,
            goal=Goal(session.answers["goal"]),
            subscription=SubscriptionTier.NONE,
        )
        try:
            self._repository.create_user(user)
        except RepositoryError:
            logger.exception("Could not save onboarded user %s; will retry on next update", user.user_id)
            await self._say(session, t(language, MessageKey.GENERIC_ERROR))
            return False

        logger.info("Onboarded user %s (%s, %s)", user.user_id, user.goal.value, user.language.value)
        try:
            await self._say(
                session,
                OutboundMessage.with_buttons(
                    t(language, MessageKey.PROFILE_CREATED, name=user.name),
                    [app_button(language, self._mini_app_url)],
                    [Button(t(language, MessageKey.BUTTON_MENU), callback_data="menu")],
                ),
            )
        except TransportError as exc:
            # The profile exists; only the confirmation is lost.
            logger.warning("Completion message to %s not delivered: %s", user.user_id, exc)
        await self._relay.relay(
            EscalationKind.NEW_SIGNUP,
            {
                "user_id": user.user_id,
                "name": user.name,
                "goal": user.goal.value,
                "language": user.language.value,
            },
        )
        return True


class SupportProgram(ConversationProgram):
    """Forwards every plain-text message to staff until the user cancels."""

    name = SUPPORT
    first_step = SUPPORT_CHAT

    def __init__(self, transport: ChatTransport, relay: AdminRelay) -> None:
        self._transport = transport
        self._relay = relay

    @staticmethod
    def _language(session: ConversationSession) -> Language:
        return Language(session.answers.get("language", DEFAULT_LANGUAGE.value))

    async def begin(self, session: ConversationSession, update: InboundUpdate | None) -> bool:
        await self._transport.send_message(
            session.recipient_id,
            OutboundMessage(t(self._language(session), MessageKey.SUPPORT_INTRO)),
        )
        return False

    async def step(self, session: ConversationSession, update: InboundUpdate) -> bool:
        language = self._language(session)
        if update.is_callback or not (update.text or "").strip():
            return False
        if update.command is not None:
            await self._transport.send_message(
                session.recipient_id, OutboundMessage(t(language, MessageKey.SUPPORT_COMMAND_HINT))
            )
            return False

        await self._relay.relay(
            EscalationKind.SUPPORT_MESSAGE,
            {
                "user_id": session.recipient_id,
                "name": session.answers.get("name") or update.display_name,
                "username": update.username,
                "text": update.text,
            },
        )
        await self._transport.send_message(
            session.recipient_id, OutboundMessage(t(language, MessageKey.SUPPORT_ACK))
        )
        return False
