"""Localized message catalog.

Every user-visible string is addressed by a `MessageKey`; each supported
`Language` carries a complete table. The tables are checked when the module
is imported, so a locale with a missing key never gets past startup.
"""
from __future__ import annotations

from enum import Enum, auto

from fitness_coach.models import DEFAULT_LANGUAGE, Goal, Language, SubscriptionTier, TimeOfDay


class MessageKey(Enum):
    # onboarding
    GREETING = auto()
    ASK_NAME = auto()
    NAME_REQUIRED = auto()
    ASK_GOAL = auto()
    GOAL_ACK = auto()
    ASK_LANGUAGE = auto()
    PROFILE_CREATED = auto()
    # labels
    GOAL_WEIGHT_LOSS = auto()
    GOAL_MUSCLE_GAIN = auto()
    GOAL_MAINTENANCE = auto()
    TIER_NONE = auto()
    TIER_MID = auto()
    TIER_FULL = auto()
    TIME_MORNING = auto()
    TIME_AFTERNOON = auto()
    TIME_EVENING = auto()
    # buttons
    BUTTON_OPEN_APP = auto()
    BUTTON_MENU = auto()
    BUTTON_SUBSCRIBE = auto()
    BUTTON_SUPPORT = auto()
    BUTTON_INDIVIDUAL_PLAN = auto()
    BUTTON_LANGUAGE = auto()
    BUTTON_PLAN_MID = auto()
    BUTTON_PLAN_FULL = auto()
    BUTTON_RENEW = auto()
    BUTTON_WORKOUT_DONE = auto()
    BUTTON_WORKOUT_SKIP = auto()
    # commands
    GENERIC_ERROR = auto()
    WELCOME_BACK = auto()
    HELP = auto()
    MAIN_MENU = auto()
    NOT_REGISTERED = auto()
    PROFILE = auto()
    NO_EXPIRY = auto()
    SUBSCRIBE_OPTIONS = auto()
    SUBSCRIPTION_ACTIVATED = auto()
    INDIVIDUAL_PLAN_REQUESTED = auto()
    OPEN_APP_LINK = auto()
    APP_UNAVAILABLE = auto()
    CHOOSE_LANGUAGE = auto()
    LANGUAGE_CHANGED = auto()
    NOTHING_TO_CANCEL = auto()
    SESSION_CANCELLED = auto()
    WORKOUT_DONE_ACK = auto()
    WORKOUT_SKIP_ACK = auto()
    # support
    SUPPORT_INTRO = auto()
    SUPPORT_ACK = auto()
    SUPPORT_COMMAND_HINT = auto()
    SUPPORT_CLOSED = auto()
    SUPPORT_REPLY = auto()
    # notifications
    REMINDER_MORNING = auto()
    REMINDER_AFTERNOON = auto()
    REMINDER_EVENING = auto()
    WEEKLY_PROGRESS = auto()
    WEEKLY_PROGRESS_EMPTY = auto()
    WEEKLY_MOTIVATION = auto()
    SUBSCRIPTION_EXPIRING = auto()
    # staff
    STAFF_NEW_SIGNUP = auto()
    STAFF_SUBSCRIPTION_CHANGED = auto()
    STAFF_INDIVIDUAL_PLAN = auto()
    STAFF_SUPPORT_MESSAGE = auto()
    STAFF_REPLY_SENT = auto()
    STAFF_REPLY_FAILED = auto()
    STAFF_REPLY_USAGE = auto()


class PluralKey(Enum):
    DAY = auto()
    WORKOUT = auto()
    MINUTE = auto()


_EN: dict[MessageKey, str] = {
    MessageKey.GREETING: "Hi! I'm your fitness coach in Telegram!",
    MessageKey.ASK_NAME: "What's your name?",
    MessageKey.NAME_REQUIRED: "Please type your name as a message.",
    MessageKey.ASK_GOAL: "What is your goal?",
    MessageKey.GOAL_ACK: "Great! {goal} is a good goal.",
    MessageKey.ASK_LANGUAGE: "Выберите язык / Choose language:",
    MessageKey.PROFILE_CREATED: "Thank you, {name}! Your profile has been created.",
    MessageKey.GOAL_WEIGHT_LOSS: "Weight loss",
    MessageKey.GOAL_MUSCLE_GAIN: "Muscle gain",
    MessageKey.GOAL_MAINTENANCE: "Staying in shape",
    MessageKey.TIER_NONE: "Free",
    MessageKey.TIER_MID: "Standard",
    MessageKey.TIER_FULL: "Premium",
    MessageKey.TIME_MORNING: "morning",
    MessageKey.TIME_AFTERNOON: "afternoon",
    MessageKey.TIME_EVENING: "evening",
    MessageKey.BUTTON_OPEN_APP: "Open App",
    MessageKey.BUTTON_MENU: "Menu",
    MessageKey.BUTTON_SUBSCRIBE: "Subscription",
    MessageKey.BUTTON_SUPPORT: "Support",
    MessageKey.BUTTON_INDIVIDUAL_PLAN: "Individual plan",
    MessageKey.BUTTON_LANGUAGE: "Language",
    MessageKey.BUTTON_PLAN_MID: "Standard, 30 days",
    MessageKey.BUTTON_PLAN_FULL: "Premium, 30 days",
    MessageKey.BUTTON_RENEW: "Renew subscription",
    MessageKey.BUTTON_WORKOUT_DONE: "I trained",
    MessageKey.BUTTON_WORKOUT_SKIP: "Skip today",
    MessageKey.GENERIC_ERROR: "Sorry, something went wrong. Please try again later.",
    MessageKey.WELCOME_BACK: "Welcome back, {name}! How can I help you today?",
    MessageKey.HELP: (
        "Here's how I can help you:\n\n"
        "/start - Start the bot\n"
        "/menu - Main menu\n"
        "/profile - Your profile\n"
        "/subscribe - View subscription options\n"
        "/language - Change language\n"
        "/support - Contact our support team\n"
        "/cancel - Leave the current dialogue\n"
        "/help - Show this help message"
    ),
    MessageKey.MAIN_MENU: "What do you want to do?",
    MessageKey.NOT_REGISTERED: "You don't have a profile yet. Send /start to create one.",
    MessageKey.PROFILE: (
        "Name: {name}\n"
        "Goal: {goal}\n"
        "Workout time: {workout_time}\n"
        "Subscription: {tier} ({expiry})"
    ),
    MessageKey.NO_EXPIRY: "no expiry",
    MessageKey.SUBSCRIBE_OPTIONS: "Your subscription: {tier}.\nChoose a plan:",
    MessageKey.SUBSCRIPTION_ACTIVATED: "Subscription {tier} is active until {expiry}.",
    MessageKey.INDIVIDUAL_PLAN_REQUESTED: "Your request for an individual plan has been sent. A coach will contact you soon.",
    MessageKey.OPEN_APP_LINK: "🔗 {url}",
    MessageKey.APP_UNAVAILABLE: "The app is not available right now.",
    MessageKey.CHOOSE_LANGUAGE: "Выберите язык / Choose language:",
    MessageKey.LANGUAGE_CHANGED: "Language set to English.",
    MessageKey.NOTHING_TO_CANCEL: "There is nothing to cancel.",
    MessageKey.SESSION_CANCELLED: "Cancelled.",
    MessageKey.WORKOUT_DONE_ACK: "Great job! Log the details in the app: {url}",
    MessageKey.WORKOUT_SKIP_ACK: "Okay, rest up. See you next time!",
    MessageKey.SUPPORT_INTRO: (
        "📣 Support\n\nDescribe your issue or question, and we will get back to you "
        "as soon as possible.\n\nType /cancel to exit support mode."
    ),
    MessageKey.SUPPORT_ACK: (
        "✅ Your message has been sent to our support team. We will get back to you "
        "as soon as possible.\n\nType /cancel to exit support mode."
    ),
    MessageKey.SUPPORT_COMMAND_HINT: "You are in support mode. Type /cancel to exit it first.",
    MessageKey.SUPPORT_CLOSED: "✅ You have exited support mode.",
    MessageKey.SUPPORT_REPLY: "👨‍💼 Support Team Reply:\n\n{text}",
    MessageKey.REMINDER_MORNING: "Good morning, {name}! Time for your morning workout.",
    MessageKey.REMINDER_AFTERNOON: "Hi {name}! Your afternoon workout is waiting.",
    MessageKey.REMINDER_EVENING: "Good evening, {name}! Time for your evening workout.",
    MessageKey.WEEKLY_PROGRESS: (
        "{name}, your week ({period}): {count} {workout_word}, {minutes} {minute_word} of training. Keep it up!"
    ),
    MessageKey.WEEKLY_PROGRESS_EMPTY: (
        "{name}, you had no workouts this week ({period}). A new week is a fresh start!"
    ),
    MessageKey.WEEKLY_MOTIVATION: "New week, new goals, {name}! Plan your workouts today.",
    MessageKey.SUBSCRIPTION_EXPIRING: (
        "{name}, your {tier} subscription expires in {days} {day_word}."
    ),
    MessageKey.STAFF_NEW_SIGNUP: "🆕 New user: {name} (id {user_id})\nGoal: {goal}\nLanguage: {language}",
    MessageKey.STAFF_SUBSCRIPTION_CHANGED: "💳 Subscription change: {name} (id {user_id})\nPlan: {tier}\nUntil: {expiry}",
    MessageKey.STAFF_INDIVIDUAL_PLAN: "📋 Individual plan request: {name} (id {user_id}, @{username})",
    MessageKey.STAFF_SUPPORT_MESSAGE: "📩 Support message from {name} (id {user_id}, @{username}):\n\n{text}",
    MessageKey.STAFF_REPLY_SENT: "✅ Reply sent to user {user_id}",
    MessageKey.STAFF_REPLY_FAILED: "❌ Failed to send reply to user {user_id}",
    MessageKey.STAFF_REPLY_USAGE: "Usage: /reply <user_id> <text>",
}

_RU: dict[MessageKey, str] = {
    MessageKey.GREETING: "Привет! Я твой фитнес-тренер в Telegram!",
    MessageKey.ASK_NAME: "Как тебя зовут?",
    MessageKey.NAME_REQUIRED: "Пожалуйста, напиши своё имя сообщением.",
    MessageKey.ASK_GOAL: "Какая у тебя цель?",
    MessageKey.GOAL_ACK: "Отлично! {goal} - хорошая цель.",
    MessageKey.ASK_LANGUAGE: "Выберите язык / Choose language:",
    MessageKey.PROFILE_CREATED: "Спасибо, {name}! Ваш профиль создан.",
    MessageKey.GOAL_WEIGHT_LOSS: "Похудение",
    MessageKey.GOAL_MUSCLE_GAIN: "Набор мышечной массы",
    MessageKey.GOAL_MAINTENANCE: "Поддержание формы",
    MessageKey.TIER_NONE: "Бесплатная",
    MessageKey.TIER_MID: "Стандарт",
    MessageKey.TIER_FULL: "Премиум",
    MessageKey.TIME_MORNING: "утро",
    MessageKey.TIME_AFTERNOON: "день",
    MessageKey.TIME_EVENING: "вечер",
    MessageKey.BUTTON_OPEN_APP: "Открыть приложение",
    MessageKey.BUTTON_MENU: "Меню",
    MessageKey.BUTTON_SUBSCRIBE: "Подписка",
    MessageKey.BUTTON_SUPPORT: "Поддержка",
    MessageKey.BUTTON_INDIVIDUAL_PLAN: "Индивидуальный план",
    MessageKey.BUTTON_LANGUAGE: "Язык",
    MessageKey.BUTTON_PLAN_MID: "Стандарт, 30 дней",
    MessageKey.BUTTON_PLAN_FULL: "Премиум, 30 дней",
    MessageKey.BUTTON_RENEW: "Продлить подписку",
    MessageKey.BUTTON_WORKOUT_DONE: "Я потренировался",
    MessageKey.BUTTON_WORKOUT_SKIP: "Пропустить сегодня",
    MessageKey.GENERIC_ERROR: "Извините, что-то пошло не так. Пожалуйста, попробуйте позже.",
    MessageKey.WELCOME_BACK: "С возвращением, {name}! Чем я могу помочь сегодня?",
    MessageKey.HELP: (
        "Вот чем я могу помочь:\n\n"
        "/start - Запустить бота\n"
        "/menu - Главное меню\n"
        "/profile - Ваш профиль\n"
        "/subscribe - Посмотреть варианты подписки\n"
        "/language - Сменить язык\n"
        "/support - Связаться с нашей службой поддержки\n"
        "/cancel - Выйти из текущего диалога\n"
        "/help - Показать это сообщение"
    ),
    MessageKey.MAIN_MENU: "Что вы хотите сделать?",
    MessageKey.NOT_REGISTERED: "У вас ещё нет профиля. Отправьте /start, чтобы создать его.",
    MessageKey.PROFILE: (
        "Имя: {name}\n"
        "Цель: {goal}\n"
        "Время тренировок: {workout_time}\n"
        "Подписка: {tier} ({expiry})"
    ),
    MessageKey.NO_EXPIRY: "без срока",
    MessageKey.SUBSCRIBE_OPTIONS: "Ваша подписка: {tier}.\nВыберите тариф:",
    MessageKey.SUBSCRIPTION_ACTIVATED: "Подписка {tier} активна до {expiry}.",
    MessageKey.INDIVIDUAL_PLAN_REQUESTED: "Ваша заявка на индивидуальный план отправлена. Тренер скоро свяжется с вами.",
    MessageKey.OPEN_APP_LINK: "🔗 {url}",
    MessageKey.APP_UNAVAILABLE: "Приложение сейчас недоступно.",
    MessageKey.CHOOSE_LANGUAGE: "Выберите язык / Choose language:",
    MessageKey.LANGUAGE_CHANGED: "Язык изменён на русский.",
    MessageKey.NOTHING_TO_CANCEL: "Нечего отменять.",
    MessageKey.SESSION_CANCELLED: "Отменено.",
    MessageKey.WORKOUT_DONE_ACK: "Отличная работа! Запишите подробности в приложении: {url}",
    MessageKey.WORKOUT_SKIP_ACK: "Хорошо, отдыхайте. До следующей тренировки!",
    MessageKey.SUPPORT_INTRO: (
        "📣 Поддержка\n\nОпишите вашу проблему или вопрос, и мы ответим вам как можно скорее."
        "\n\nНапишите /cancel, чтобы выйти из режима поддержки."
    ),
    MessageKey.SUPPORT_ACK: (
        "✅ Ваше сообщение отправлено команде поддержки. Мы ответим вам как можно скорее."
        "\n\nНапишите /cancel, чтобы выйти из режима поддержки."
    ),
    MessageKey.SUPPORT_COMMAND_HINT: "Вы в режиме поддержки. Сначала напишите /cancel, чтобы выйти из него.",
    MessageKey.SUPPORT_CLOSED: "✅ Вы вышли из режима поддержки.",
    MessageKey.SUPPORT_REPLY: "👨‍💼 Ответ службы поддержки:\n\n{text}",
    MessageKey.REMINDER_MORNING: "Доброе утро, {name}! Время утренней тренировки.",
    MessageKey.REMINDER_AFTERNOON: "Привет, {name}! Дневная тренировка ждёт тебя.",
    MessageKey.REMINDER_EVENING: "Добрый вечер, {name}! Время вечерней тренировки.",
    MessageKey.WEEKLY_PROGRESS: (
        "{name}, итоги недели ({period}): {count} {workout_word}, {minutes} {minute_word} тренировок. Так держать!"
    ),
    MessageKey.WEEKLY_PROGRESS_EMPTY: (
        "{name}, на этой неделе ({period}) у тебя не было тренировок. Новая неделя - новый старт!"
    ),
    MessageKey.WEEKLY_MOTIVATION: "Новая неделя - новые цели, {name}! Запланируй тренировки сегодня.",
    MessageKey.SUBSCRIPTION_EXPIRING: (
        "{name}, ваша подписка {tier} истекает через {days} {day_word}."
    ),
    MessageKey.STAFF_NEW_SIGNUP: "🆕 Новый пользователь: {name} (id {user_id})\nЦель: {goal}\nЯзык: {language}",
    MessageKey.STAFF_SUBSCRIPTION_CHANGED: "💳 Изменение подписки: {name} (id {user_id})\nТариф: {tier}\nДо: {expiry}",
    MessageKey.STAFF_INDIVIDUAL_PLAN: "📋 Заявка на индивидуальный план: {name} (id {user_id}, @{username})",
    MessageKey.STAFF_SUPPORT_MESSAGE: "📩 Сообщение в поддержку от {name} (id {user_id}, @{username}):\n\n{text}",
    MessageKey.STAFF_REPLY_SENT: "✅ Ответ отправлен пользователю {user_id}",
    MessageKey.STAFF_REPLY_FAILED: "❌ Не удалось отправить ответ пользователю {user_id}",
    MessageKey.STAFF_REPLY_USAGE: "Использование: /reply <user_id> <текст>",
}

CATALOG: dict[Language, dict[MessageKey, str]] = {
    Language.EN: _EN,
    Language.RU: _RU,
}

# English: (one, other). Russian: (one, few, many).
PLURALS: dict[Language, dict[PluralKey, tuple[str, ...]]] = {
    Language.EN: {
        PluralKey.DAY: ("day", "days"),
        PluralKey.WORKOUT: ("workout", "workouts"),
        PluralKey.MINUTE: ("minute", "minutes"),
    },
    Language.RU: {
        PluralKey.DAY: ("день", "дня", "дней"),
        PluralKey.WORKOUT: ("тренировка", "тренировки", "тренировок"),
        PluralKey.MINUTE: ("минута", "минуты", "минут"),
    },
}

_PLURAL_ARITY = {Language.EN: 2, Language.RU: 3}


def _check_catalog() -> None:
    expected = set(MessageKey)
    for language in Language:
        table = CATALOG.get(language)
        if table is None:
            raise RuntimeError(f"no message table for locale {language.value}")
        missing = expected - set(table)
        if missing:
            names = ", ".join(sorted(key.name for key in missing))
            raise RuntimeError(f"locale {language.value} is missing messages: {names}")
        forms = PLURALS.get(language, {})
        for key in PluralKey:
            if len(forms.get(key, ())) != _PLURAL_ARITY[language]:
                raise RuntimeError(f"locale {language.value} has bad plural forms for {key.name}")


_check_catalog()


def t(language: Language | None, key: MessageKey, **params: object) -> str:
    table = CATALOG[language or DEFAULT_LANGUAGE]
    template = table[key]
    return template.format(**params) if params else template


def _plural_index(language: Language, n: int) -> int:
    n = abs(n)
    if language is Language.RU:
        if n % 10 == 1 and n % 100 != 11:
            return 0
        if 2 <= n % 10 <= 4 and not 12 <= n % 100 <= 14:
            return 1
        return 2
    return 0 if n == 1 else 1


def plural(language: Language | None, key: PluralKey, n: int) -> str:
    language = language or DEFAULT_LANGUAGE
    return PLURALS[language][key][_plural_index(language, n)]


_GOAL_KEYS = {
    Goal.WEIGHT_LOSS: MessageKey.GOAL_WEIGHT_LOSS,
    Goal.MUSCLE_GAIN: MessageKey.GOAL_MUSCLE_GAIN,
    Goal.MAINTENANCE: MessageKey.GOAL_MAINTENANCE,
}

_TIER_KEYS = {
    SubscriptionTier.NONE: MessageKey.TIER_NONE,
    SubscriptionTier.MID: MessageKey.TIER_MID,
    SubscriptionTier.FULL: MessageKey.TIER_FULL,
}

_TIME_KEYS = {
    TimeOfDay.MORNING: MessageKey.TIME_MORNING,
    TimeOfDay.AFTERNOON: MessageKey.TIME_AFTERNOON,
    TimeOfDay.EVENING: MessageKey.TIME_EVENING,
}


def goal_label(language: Language | None, goal: Goal) -> str:
    return t(language, _GOAL_KEYS[goal])


def tier_label(language: Language | None, tier: SubscriptionTier) -> str:
    return t(language, _TIER_KEYS[tier])


def time_label(language: Language | None, time_of_day: TimeOfDay) -> str:
    return t(language, _TIME_KEYS[time_of_day])
