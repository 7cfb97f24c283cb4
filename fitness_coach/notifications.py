from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from fitness_coach.interfaces import UserRepository
from fitness_coach.messages import MessageKey, PluralKey, plural, t, tier_label
from fitness_coach.models import Button, OutboundMessage, TimeOfDay, User, WorkoutLog
from fitness_coach.scheduler import NotificationScheduler

REMINDER_KEYS = {
    TimeOfDay.MORNING: MessageKey.REMINDER_MORNING,
    TimeOfDay.AFTERNOON: MessageKey.REMINDER_AFTERNOON,
    TimeOfDay.EVENING: MessageKey.REMINDER_EVENING,
}


@dataclass(frozen=True)
class NotificationSettings:
    morning_cron: str = "0 8 * * *"
    afternoon_cron: str = "0 13 * * *"
    evening_cron: str = "0 18 * * *"
    weekly_progress_cron: str = "0 19 * * sun"
    weekly_motivation_cron: str = "0 10 * * mon"
    subscription_expiry_cron: str = "0 12 * * *"
    expiry_lookahead_days: int = 3
    active_window_days: int = 30


# audiences


def workout_time_audience(time_of_day: TimeOfDay):
    def audience(repository: UserRepository, fire_time: datetime) -> list[User]:
        weekday = fire_time.weekday()
        return [
            user
            for user in repository.users_by_workout_time_preference(time_of_day)
            if user.trains_on(weekday)
        ]

    return audience


def expiring_subscription_audience(days_ahead: int):
    def audience(repository: UserRepository, fire_time: datetime) -> list[User]:
        return repository.users_with_expiring_subscription(days_ahead, fire_time)

    return audience


def recently_active_audience(since_days: int):
    def audience(repository: UserRepository, fire_time: datetime) -> list[User]:
        return repository.all_recently_active_users(since_days, fire_time)

    return audience


def everyone_audience(repository: UserRepository, fire_time: datetime) -> list[User]:
    return repository.all_users()


# per-user context


def weekly_logs_context(repository: UserRepository, user: User, fire_time: datetime) -> dict:
    start = fire_time - timedelta(days=7)
    return {
        "logs": repository.workout_logs_for_user_in_range(user.user_id, start, fire_time),
        "period_start": start,
        "period_end": fire_time,
    }


def days_until_expiry(expires_at: datetime, now: datetime) -> int:
    """Whole days left, rounded up; an expiry later today counts as one day."""
    seconds = (expires_at - now).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def expiry_context(repository: UserRepository, user: User, fire_time: datetime) -> dict:
    if user.subscription_expires_at is None:
        return {}
    return {"days_left": days_until_expiry(user.subscription_expires_at, fire_time)}


# compose functions; pure


def compose_workout_reminder(time_of_day: TimeOfDay):
    def compose(user: User, context: dict) -> OutboundMessage:
        language = user.language
        return OutboundMessage.with_buttons(
            t(language, REMINDER_KEYS[time_of_day], name=user.name),
            [
                Button(t(language, MessageKey.BUTTON_WORKOUT_DONE), callback_data="workout_done"),
                Button(t(language, MessageKey.BUTTON_WORKOUT_SKIP), callback_data="workout_skip"),
            ],
        )

    return compose


def summarize_week(logs: list[WorkoutLog]) -> tuple[int, int]:
    return len(logs), sum(log.duration_minutes or 0 for log in logs)


def week_range(start: datetime, end: datetime) -> str:
    """`DD.MM - DD.MM.YYYY` for the half-open window `[start, end)`."""
    last_day = (end - timedelta(microseconds=1)).date()
    return f"{start:%d.%m} - {last_day:%d.%m.%Y}"


def compose_weekly_progress(user: User, context: dict) -> OutboundMessage:
    language = user.language
    count, minutes = summarize_week(list(context.get("logs", ())))
    period = week_range(context["period_start"], context["period_end"])
    if count == 0:
        return OutboundMessage(t(language, MessageKey.WEEKLY_PROGRESS_EMPTY, name=user.name, period=period))
    return OutboundMessage(
        t(
            language,
            MessageKey.WEEKLY_PROGRESS,
            name=user.name,
            period=period,
            count=count,
            workout_word=plural(language, PluralKey.WORKOUT, count),
            minutes=minutes,
            minute_word=plural(language, PluralKey.MINUTE, minutes),
        )
    )


def compose_weekly_motivation(user: User, context: dict) -> OutboundMessage:
    return OutboundMessage(t(user.language, MessageKey.WEEKLY_MOTIVATION, name=user.name))


def compose_subscription_expiry(user: User, context: dict) -> OutboundMessage | None:
    days_left = context.get("days_left")
    if days_left is None:
        return None
    language = user.language
    return OutboundMessage.with_buttons(
        t(
            language,
            MessageKey.SUBSCRIPTION_EXPIRING,
            name=user.name,
            tier=tier_label(language, user.subscription),
            days=days_left,
            day_word=plural(language, PluralKey.DAY, days_left),
        ),
        [Button(t(language, MessageKey.BUTTON_RENEW), callback_data=f"plan_{user.subscription.value}")],
    )


def register_default_triggers(
    scheduler: NotificationScheduler, settings: NotificationSettings = NotificationSettings()
) -> None:
    reminder_crons = {
        TimeOfDay.MORNING: settings.morning_cron,
        TimeOfDay.AFTERNOON: settings.afternoon_cron,
        TimeOfDay.EVENING: settings.evening_cron,
    }
    for time_of_day, cron in reminder_crons.items():
        scheduler.register_trigger(
            f"workout_reminder_{time_of_day.value}",
            cron,
            workout_time_audience(time_of_day),
            compose_workout_reminder(time_of_day),
        )
    scheduler.register_trigger(
        "weekly_progress",
        settings.weekly_progress_cron,
        recently_active_audience(settings.active_window_days),
        compose_weekly_progress,
        context=weekly_logs_context,
    )
    scheduler.register_trigger(
        "weekly_motivation",
        settings.weekly_motivation_cron,
        everyone_audience,
        compose_weekly_motivation,
    )
    scheduler.register_trigger(
        "subscription_expiry",
        settings.subscription_expiry_cron,
        expiring_subscription_audience(settings.expiry_lookahead_days),
        compose_subscription_expiry,
        context=expiry_context,
    )
