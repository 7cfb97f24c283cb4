from __future__ import annotations

import logging

from telegram import Bot, BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError

from fitness_coach.errors import TransportError
from fitness_coach.models import Button, InboundUpdate, OutboundMessage

logger = logging.getLogger(__name__)


def keyboard_for(message: OutboundMessage) -> InlineKeyboardMarkup | None:
    if not message.buttons:
        return None
    return InlineKeyboardMarkup(
        [[_inline_button(button) for button in row] for row in message.buttons]
    )


def _inline_button(button: Button) -> InlineKeyboardButton:
    if button.url:
        return InlineKeyboardButton(button.text, url=button.url)
    return InlineKeyboardButton(button.text, callback_data=button.callback_data)


def update_from_telegram(update: Update) -> InboundUpdate | None:
    """Flatten a Telegram update into the fields the router cares about."""
    user = update.effective_user
    if user is None:
        return None

    display_name = " ".join(part for part in (user.first_name, user.last_name) if part).strip()
    chat = update.effective_chat
    common = {
        "recipient_id": str(user.id),
        "chat_id": str(chat.id) if chat is not None else "",
        "display_name": display_name,
        "username": user.username or "",
        "language_code": user.language_code or "",
    }
    if update.callback_query is not None:
        return InboundUpdate(callback_data=update.callback_query.data or "", **common)
    if update.message is not None:
        return InboundUpdate(text=update.message.text or "", **common)
    return None


class TelegramTransport:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, recipient_id: str, message: OutboundMessage) -> None:
        try:
            await self._bot.send_message(
                chat_id=recipient_id,
                text=message.text,
                reply_markup=keyboard_for(message),
                parse_mode=message.parse_mode,
            )
        except TelegramError as exc:
            raise TransportError(recipient_id, str(exc)) from exc

    async def set_command_menu(self, commands: list[tuple[str, str]]) -> None:
        try:
            await self._bot.set_my_commands(
                [BotCommand(name, description) for name, description in commands]
            )
        except TelegramError as exc:
            # Cosmetic only; the bot works without a menu.
            logger.warning("Could not set command menu: %s", exc)
