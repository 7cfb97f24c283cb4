from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Language(str, Enum):
    RU = "ru"
    EN = "en"


DEFAULT_LANGUAGE = Language.RU


class Goal(str, Enum):
    WEIGHT_LOSS = "weight_loss"
    MUSCLE_GAIN = "muscle_gain"
    MAINTENANCE = "maintenance"


class SubscriptionTier(str, Enum):
    NONE = "none"
    MID = "mid"
    FULL = "full"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


@dataclass
class User:
    user_id: str
    name: str
    language: Language = DEFAULT_LANGUAGE
    goal: Goal = Goal.MAINTENANCE
    subscription: SubscriptionTier = SubscriptionTier.NONE
    subscription_expires_at: datetime | None = None
    workout_time: TimeOfDay = TimeOfDay.EVENING
    # Monday = 0; empty means every day.
    workout_days: frozenset[int] = frozenset()
    phone: str | None = None
    created_at: datetime | None = None
    last_active_at: datetime | None = None

    def trains_on(self, weekday: int) -> bool:
        return not self.workout_days or weekday in self.workout_days


@dataclass(frozen=True)
class WorkoutLog:
    user_id: str
    exercise: str
    logged_at: datetime
    reps: int | None = None
    sets: int | None = None
    weight: float | None = None
    duration_minutes: int | None = None
    note: str = ""


@dataclass(frozen=True)
class InboundUpdate:
    recipient_id: str
    text: str | None = None
    callback_data: str | None = None
    display_name: str = ""
    username: str = ""
    language_code: str = ""
    # Chat the update arrived in; differs from recipient_id in group chats.
    chat_id: str = ""

    @property
    def reply_chat_id(self) -> str:
        return self.chat_id or self.recipient_id

    @property
    def is_callback(self) -> bool:
        return self.callback_data is not None

    @property
    def command(self) -> str | None:
        """Command name of a `/name args` message, without the bot mention."""
        if not self.text or not self.text.startswith("/"):
            return None
        head = self.text.split(maxsplit=1)[0][1:]
        name = head.split("@", 1)[0].lower()
        return name or None

    @property
    def command_args(self) -> list[str]:
        if self.command is None:
            return []
        return self.text.split()[1:]


@dataclass(frozen=True)
class Button:
    text: str
    callback_data: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class OutboundMessage:
    text: str
    buttons: tuple[tuple[Button, ...], ...] = ()
    parse_mode: str | None = None

    @classmethod
    def with_buttons(cls, text: str, *rows: list[Button] | tuple[Button, ...]) -> "OutboundMessage":
        return cls(text=text, buttons=tuple(tuple(row) for row in rows))
