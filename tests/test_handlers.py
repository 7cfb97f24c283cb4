import pytest
from datetime import datetime, timedelta, timezone

from conftest import ADMIN_ID, APP_URL, make_user, press, text
from fitness_coach.handlers import COMMAND_MENU, BotHandlers, HandlerConfig
from fitness_coach.models import Language, SubscriptionTier
from fitness_coach.programs import ONBOARDING, SUPPORT
from fitness_coach.relay import AdminRelay
from fitness_coach.router import CommandRouter


@pytest.mark.asyncio
async def test_start_for_new_user_begins_onboarding(router, engine, transport):
    await router.dispatch(text("1", "/start", language_code="en-GB"))
    assert engine.active_program("1") == ONBOARDING
    assert transport.texts_for("1") == ["Hi! I'm your fitness coach in Telegram!", "What's your name?"]


@pytest.mark.asyncio
async def test_start_for_known_user_welcomes_back(router, engine, repo, transport):
    repo.users["2"] = make_user("2", name="Bob")
    await router.dispatch(text("2", "/start"))

    assert not engine.has_session("2")
    [message] = transport.messages_for("2")
    assert message.text == "Welcome back, Bob! How can I help you today?"
    assert message.buttons[0][0].url == APP_URL


@pytest.mark.asyncio
async def test_full_onboarding_through_router(router, repo, transport):
    await router.dispatch(text("3", "/start"))
    await router.dispatch(text("3", "Olga"))
    await router.dispatch(press("3", "goal_weight_loss"))
    await router.dispatch(press("3", "lang_ru"))

    assert repo.users["3"].name == "Olga"
    assert transport.texts_for("3")[-1] == "Спасибо, Olga! Ваш профиль создан."


@pytest.mark.asyncio
async def test_menu_requires_profile(router, transport):
    await router.dispatch(text("4", "/menu"))
    assert transport.texts_for("4") == ["У вас ещё нет профиля. Отправьте /start, чтобы создать его."]


@pytest.mark.asyncio
async def test_menu_buttons(router, repo, transport):
    repo.users["5"] = make_user("5")
    await router.dispatch(press("5", "menu"))
    assert transport.callbacks_for("5") == [None, "subscribe", "support", "individual_plan"]


@pytest.mark.asyncio
async def test_profile(router, repo, transport):
    expires = datetime(2026, 11, 30, tzinfo=timezone.utc)
    repo.users["6"] = make_user(
        "6", name="Kate", subscription=SubscriptionTier.FULL, subscription_expires_at=expires
    )
    await router.dispatch(text("6", "/profile"))
    assert transport.texts_for("6") == [
        "Name: Kate\nGoal: Staying in shape\nWorkout time: evening\nSubscription: Premium (2026-11-30)"
    ]


@pytest.mark.asyncio
async def test_select_plan_updates_subscription_and_notifies_staff(router, repo, transport):
    repo.users["7"] = make_user("7", name="Max")
    await router.dispatch(press("7", "plan_mid"))

    user = repo.users["7"]
    assert user.subscription is SubscriptionTier.MID
    remaining = user.subscription_expires_at - datetime.now(timezone.utc)
    assert timedelta(days=29) < remaining <= timedelta(days=30)
    assert transport.texts_for("7")[0].startswith("Subscription Standard is active until")
    staff = transport.texts_for(ADMIN_ID)
    assert len(staff) == 1
    assert "Max" in staff[0] and "mid" in staff[0]


@pytest.mark.asyncio
async def test_renewal_extends_from_current_expiry(router, repo):
    current = datetime.now(timezone.utc) + timedelta(days=5)
    repo.users["8"] = make_user(
        "8", subscription=SubscriptionTier.FULL, subscription_expires_at=current
    )
    await router.dispatch(press("8", "plan_full"))
    assert repo.users["8"].subscription_expires_at == current + timedelta(days=30)


@pytest.mark.asyncio
async def test_tier_change_starts_from_now(router, repo):
    current = datetime.now(timezone.utc) + timedelta(days=5)
    repo.users["9"] = make_user("9", subscription=SubscriptionTier.MID, subscription_expires_at=current)
    await router.dispatch(press("9", "plan_full"))
    expires = repo.users["9"].subscription_expires_at
    assert expires < current + timedelta(days=30)


@pytest.mark.asyncio
async def test_unknown_plan_is_ignored(router, repo, transport):
    repo.users["10"] = make_user("10")
    await router.dispatch(press("10", "plan_gold"))
    await router.dispatch(press("10", "plan_none"))
    assert repo.users["10"].subscription is SubscriptionTier.NONE
    assert transport.sent == []


@pytest.mark.asyncio
async def test_subscription_survives_staff_outage(router, repo, transport):
    repo.users["11"] = make_user("11")
    transport.fail_for.add(ADMIN_ID)
    await router.dispatch(press("11", "plan_full"))
    assert repo.users["11"].subscription is SubscriptionTier.FULL
    assert len(transport.texts_for("11")) == 1


@pytest.mark.asyncio
async def test_individual_plan_request(router, repo, transport):
    repo.users["12"] = make_user("12", name="Ira")
    await router.dispatch(press("12", "individual_plan", username="ira_fit"))

    assert "@ira_fit" in transport.texts_for(ADMIN_ID)[0]
    assert transport.texts_for("12")[0].startswith("Your request for an individual plan")


@pytest.mark.asyncio
async def test_support_for_visitor_uses_client_language(router, engine, transport):
    await router.dispatch(text("13", "/support", language_code="en"))
    assert engine.active_program("13") == SUPPORT
    assert transport.texts_for("13")[0].startswith("📣 Support")


@pytest.mark.asyncio
async def test_cancel_without_session(router, repo, transport):
    repo.users["14"] = make_user("14")
    await router.dispatch(text("14", "/cancel"))
    assert transport.texts_for("14") == ["There is nothing to cancel."]


@pytest.mark.asyncio
async def test_language_menu_and_switch(router, repo, transport):
    repo.users["15"] = make_user("15", language=Language.EN)
    await router.dispatch(text("15", "/language"))
    assert transport.callbacks_for("15") == ["language_ru", "language_en"]

    await router.dispatch(press("15", "language_ru"))
    assert repo.users["15"].language is Language.RU
    assert transport.texts_for("15")[-1] == "Язык изменён на русский."


@pytest.mark.asyncio
async def test_workout_buttons(router, repo, transport):
    repo.users["16"] = make_user("16")
    await router.dispatch(press("16", "workout_done"))
    await router.dispatch(press("16", "workout_skip"))
    assert transport.texts_for("16") == [
        f"Great job! Log the details in the app: {APP_URL}",
        "Okay, rest up. See you next time!",
    ]


@pytest.mark.asyncio
async def test_open_app_without_url(repo, transport, engine, relay):
    router = CommandRouter(repo, transport, engine)
    BotHandlers(repo, transport, engine, relay, HandlerConfig()).register(router)
    repo.users["17"] = make_user("17")

    await router.dispatch(press("17", "open_app"))
    assert transport.texts_for("17") == ["The app is not available right now."]


@pytest.mark.asyncio
async def test_staff_reply_reaches_user(router, repo, transport):
    repo.users["18"] = make_user("18", language=Language.EN)
    await router.dispatch(text(ADMIN_ID, "/reply 18 Your plan is ready"))

    assert transport.texts_for("18") == ["👨‍💼 Support Team Reply:\n\nYour plan is ready"]
    assert transport.texts_for(ADMIN_ID) == ["✅ Reply sent to user 18"]


@pytest.mark.asyncio
async def test_staff_reply_reports_failure(router, transport):
    transport.fail_for.add("19")
    await router.dispatch(text(ADMIN_ID, "/reply 19 hello"))
    assert transport.texts_for(ADMIN_ID) == ["❌ Failed to send reply to user 19"]


@pytest.mark.asyncio
async def test_staff_reply_usage(router, transport):
    await router.dispatch(text(ADMIN_ID, "/reply nobody"))
    assert transport.texts_for(ADMIN_ID) == ["Usage: /reply <user_id> <text>"]


@pytest.mark.asyncio
async def test_reply_from_regular_user_is_ignored(router, repo, transport):
    repo.users["20"] = make_user("20")
    await router.dispatch(text("20", "/reply 18 hi"))
    assert transport.sent == []


@pytest.mark.asyncio
async def test_staff_reply_from_group_chat(repo, transport, engine):
    staff_chat = "-1001234"
    relay = AdminRelay(transport, staff_chat, Language.EN)
    router = CommandRouter(repo, transport, engine)
    BotHandlers(repo, transport, engine, relay, HandlerConfig()).register(router)
    repo.users["18"] = make_user("18")

    await router.dispatch(text("42", "/reply 18 hi", chat_id=staff_chat))

    assert transport.texts_for("18") == ["👨‍💼 Support Team Reply:\n\nhi"]
    assert transport.texts_for(staff_chat) == ["✅ Reply sent to user 18"]
    assert transport.texts_for("42") == []


@pytest.mark.asyncio
async def test_reply_from_private_chat_of_staff_member_is_ignored(repo, transport, engine):
    relay = AdminRelay(transport, "-1001234", Language.EN)
    router = CommandRouter(repo, transport, engine)
    BotHandlers(repo, transport, engine, relay, HandlerConfig()).register(router)
    repo.users["18"] = make_user("18")

    await router.dispatch(text("42", "/reply 18 hi", chat_id="42"))
    assert transport.sent == []


def test_command_menu_matches_registered_commands(router):
    assert {name for name, _ in COMMAND_MENU} <= set(router.command_names)
    assert "reply" not in {name for name, _ in COMMAND_MENU}
