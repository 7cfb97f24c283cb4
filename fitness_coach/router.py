from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fitness_coach.conversation import ConversationEngine
from fitness_coach.errors import RepositoryError, TransportError
from fitness_coach.interfaces import ChatTransport, UserRepository
from fitness_coach.messages import MessageKey, t
from fitness_coach.models import InboundUpdate, OutboundMessage, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandRequest:
    recipient_id: str
    user: User | None
    update: InboundUpdate
    args: list[str] = field(default_factory=list)

    @property
    def chat_id(self) -> str:
        return self.update.reply_chat_id


Handler = Callable[[CommandRequest], Awaitable[None]]


@dataclass(frozen=True)
class _Route:
    handler: Handler
    always_available: bool = False


class CommandRouter:
    """Dispatches inbound updates to command and callback handlers.

    An active conversation session takes every update except the
    always-available routes (cancel, language switch). Unknown commands and
    callbacks are dropped quietly.
    """

    def __init__(
        self,
        repository: UserRepository,
        transport: ChatTransport,
        engine: ConversationEngine,
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._engine = engine
        self._commands: dict[str, _Route] = {}
        self._callbacks: dict[str, _Route] = {}
        self._prefix_callbacks: dict[str, _Route] = {}
        self._text_fallback: Handler | None = None

    def register_command(self, name: str, handler: Handler, *, always_available: bool = False) -> None:
        self._commands[name.lower().lstrip("/")] = _Route(handler, always_available)

    def register_callback(
        self,
        pattern: str,
        handler: Handler,
        *,
        prefix: bool = False,
        always_available: bool = False,
    ) -> None:
        routes = self._prefix_callbacks if prefix else self._callbacks
        routes[pattern] = _Route(handler, always_available)

    def register_text_fallback(self, handler: Handler) -> None:
        self._text_fallback = handler

    @property
    def command_names(self) -> list[str]:
        return list(self._commands)

    def _resolve(self, update: InboundUpdate) -> tuple[_Route | None, list[str]]:
        if update.is_callback:
            data = update.callback_data or ""
            route = self._callbacks.get(data)
            if route is not None:
                return route, []
            # longest prefix wins so "plan_full_" style patterns can nest
            for pattern in sorted(self._prefix_callbacks, key=len, reverse=True):
                if data.startswith(pattern):
                    return self._prefix_callbacks[pattern], [data[len(pattern):]]
            return None, []

        command = update.command
        if command is not None:
            return self._commands.get(command), update.command_args
        if self._text_fallback is not None and (update.text or "").strip():
            return _Route(self._text_fallback), [update.text.strip()]
        return None, []

    def _load_user(self, recipient_id: str, route: _Route) -> User | None:
        try:
            user = self._repository.get_user_by_id(recipient_id)
        except RepositoryError:
            if not route.always_available:
                raise
            # cancel and the language menu must keep working during an outage
            logger.warning(
                "User lookup for %s failed; running %s without a profile",
                recipient_id,
                route.handler.__name__,
            )
            return None
        if user is None:
            return None
        now = datetime.now(timezone.utc)
        try:
            self._repository.update_user(recipient_id, last_active_at=now)
        except RepositoryError as exc:
            logger.warning("Could not refresh activity for %s: %s", recipient_id, exc)
        else:
            user.last_active_at = now
        return user

    async def dispatch(self, update: InboundUpdate) -> None:
        recipient_id = update.recipient_id
        if not recipient_id:
            logger.warning("Dropping update without recipient: %r", update)
            return

        route, args = self._resolve(update)
        try:
            if route is None or not route.always_available:
                if await self._engine.resume(recipient_id, update):
                    return
            if route is None:
                logger.debug(
                    "Unrouted update from %s: command=%s callback=%s",
                    recipient_id,
                    update.command,
                    update.callback_data,
                )
                return
            user = self._load_user(recipient_id, route)
            await route.handler(CommandRequest(recipient_id, user, update, args))
        except RepositoryError:
            logger.exception("Repository failure while handling update from %s", recipient_id)
            await self._reply_generic_error(recipient_id, update.reply_chat_id)
        except TransportError as exc:
            logger.warning("Reply to %s not delivered: %s", recipient_id, exc)

    async def _reply_generic_error(self, recipient_id: str, chat_id: str) -> None:
        try:
            user = self._repository.get_user_by_id(recipient_id)
        except RepositoryError:
            user = None
        language = user.language if user else None
        try:
            await self._transport.send_message(
                chat_id, OutboundMessage(t(language, MessageKey.GENERIC_ERROR))
            )
        except TransportError as exc:
            logger.warning("Error notice to %s not delivered: %s", chat_id, exc)
