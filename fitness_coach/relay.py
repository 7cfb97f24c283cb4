from __future__ import annotations

import logging
from enum import Enum

from fitness_coach.errors import TransportError
from fitness_coach.interfaces import ChatTransport
from fitness_coach.messages import MessageKey, t
from fitness_coach.models import Language, OutboundMessage

logger = logging.getLogger(__name__)


class EscalationKind(str, Enum):
    NEW_SIGNUP = "new_signup"
    SUBSCRIPTION_CHANGED = "subscription_changed"
    INDIVIDUAL_PLAN_REQUEST = "individual_plan_request"
    SUPPORT_MESSAGE = "support_message"


TEMPLATES = {
    EscalationKind.NEW_SIGNUP: MessageKey.STAFF_NEW_SIGNUP,
    EscalationKind.SUBSCRIPTION_CHANGED: MessageKey.STAFF_SUBSCRIPTION_CHANGED,
    EscalationKind.INDIVIDUAL_PLAN_REQUEST: MessageKey.STAFF_INDIVIDUAL_PLAN,
    EscalationKind.SUPPORT_MESSAGE: MessageKey.STAFF_SUPPORT_MESSAGE,
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return "-"


class AdminRelay:
    """Forwards events to the staff chat and staff replies back to users.

    Nothing here raises: delivery problems are logged and reported through
    the boolean return value so the user-facing handler carries on.
    """

    def __init__(
        self,
        transport: ChatTransport,
        admin_chat_id: str | None,
        language: Language = Language.RU,
    ) -> None:
        self._transport = transport
        self._admin_chat_id = admin_chat_id
        self._language = language
        if not admin_chat_id:
            logger.warning("ADMIN_CHAT_ID is not set; staff escalations are disabled")

    @property
    def admin_chat_id(self) -> str | None:
        return self._admin_chat_id

    @property
    def language(self) -> Language:
        return self._language

    def is_admin(self, chat_id: str) -> bool:
        return bool(self._admin_chat_id) and chat_id == self._admin_chat_id

    def format(self, kind: EscalationKind, payload: dict[str, object]) -> str:
        values = _Defaults({k: v for k, v in payload.items() if v not in (None, "")})
        template = t(self._language, TEMPLATES[kind])
        return template.format_map(values)

    async def relay(self, kind: EscalationKind, payload: dict[str, object]) -> bool:
        if not self._admin_chat_id:
            return False
        text = self.format(kind, payload)
        try:
            await self._transport.send_message(self._admin_chat_id, OutboundMessage(text))
        except TransportError as exc:
            logger.warning("Escalation %s for user %s not delivered: %s", kind.value, payload.get("user_id"), exc)
            return False
        logger.info("Escalated %s for user %s", kind.value, payload.get("user_id"))
        return True

    async def reply_to_user(
        self, recipient_id: str, text: str, language: Language | None = None
    ) -> bool:
        message = OutboundMessage(t(language, MessageKey.SUPPORT_REPLY, text=text))
        try:
            await self._transport.send_message(recipient_id, message)
        except TransportError as exc:
            logger.warning("Staff reply to user %s not delivered: %s", recipient_id, exc)
            return False
        return True

    async def notify_staff(self, text: str) -> bool:
        if not self._admin_chat_id:
            return False
        try:
            await self._transport.send_message(self._admin_chat_id, OutboundMessage(text))
        except TransportError as exc:
            logger.warning("Staff notice not delivered: %s", exc)
            return False
        return True
