import logging

import pytest

from conftest import ADMIN_ID
from fitness_coach.models import Language
from fitness_coach.relay import AdminRelay, EscalationKind


def test_format_fills_missing_fields(relay):
    text = relay.format(EscalationKind.INDIVIDUAL_PLAN_REQUEST, {"user_id": "5", "name": "Lea", "username": ""})
    assert text == "📋 Individual plan request: Lea (id 5, @-)"


def test_format_in_russian(transport):
    relay = AdminRelay(transport, ADMIN_ID, Language.RU)
    text = relay.format(EscalationKind.NEW_SIGNUP, {"user_id": "5", "name": "Лея", "goal": "weight_loss", "language": "ru"})
    assert text.startswith("🆕 Новый пользователь: Лея (id 5)")


@pytest.mark.asyncio
async def test_relay_delivers_to_staff_chat(relay, transport):
    assert await relay.relay(EscalationKind.SUPPORT_MESSAGE, {"user_id": "5", "text": "hi"})
    [(recipient, message)] = transport.sent
    assert recipient == ADMIN_ID
    assert message.text.endswith("\n\nhi")


@pytest.mark.asyncio
async def test_relay_failure_is_logged_not_raised(relay, transport, caplog):
    transport.fail_for.add(ADMIN_ID)
    with caplog.at_level(logging.WARNING, logger="fitness_coach.relay"):
        delivered = await relay.relay(EscalationKind.NEW_SIGNUP, {"user_id": "5", "name": "Lea"})

    assert delivered is False
    assert "not delivered" in caplog.text


@pytest.mark.asyncio
async def test_relay_disabled_without_admin_chat(transport):
    relay = AdminRelay(transport, None)
    assert await relay.relay(EscalationKind.NEW_SIGNUP, {"user_id": "5"}) is False
    assert await relay.notify_staff("ping") is False
    assert not relay.is_admin("5")
    assert transport.sent == []


@pytest.mark.asyncio
async def test_reply_to_user_uses_user_language(relay, transport):
    assert await relay.reply_to_user("5", "Привет", Language.RU)
    assert transport.texts_for("5") == ["👨‍💼 Ответ службы поддержки:\n\nПривет"]


@pytest.mark.asyncio
async def test_reply_to_blocked_user(relay, transport):
    transport.fail_for.add("5")
    assert await relay.reply_to_user("5", "hello") is False


def test_is_admin(relay):
    assert relay.is_admin(ADMIN_ID)
    assert not relay.is_admin("5")
