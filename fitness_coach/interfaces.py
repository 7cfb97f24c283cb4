from __future__ import annotations

from datetime import datetime
from typing import Protocol

from fitness_coach.models import OutboundMessage, SubscriptionTier, TimeOfDay, User, WorkoutLog


class UserRepository(Protocol):
    """Single-record reads and writes over users, workout logs and the notification ledger.

    Implementations raise `RepositoryError` on any storage failure.
    """

    def create_user(self, user: User) -> User: ...

    def get_user_by_id(self, user_id: str) -> User | None: ...

    def update_user(self, user_id: str, **fields: object) -> None: ...

    def update_subscription(
        self, user_id: str, tier: SubscriptionTier, expires_at: datetime | None
    ) -> None: ...

    def users_with_expiring_subscription(self, days_ahead: int, now: datetime) -> list[User]: ...

    def users_by_workout_time_preference(self, time_of_day: TimeOfDay) -> list[User]: ...

    def all_recently_active_users(self, since_days: int, now: datetime) -> list[User]: ...

    def all_users(self) -> list[User]: ...

    def workout_logs_for_user_in_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[WorkoutLog]: ...

    def notification_sent(self, user_id: str, trigger: str, period_key: str) -> bool: ...

    def mark_notification_sent(self, user_id: str, trigger: str, period_key: str) -> None: ...


class ChatTransport(Protocol):
    """Outbound side of the chat network. Failures raise `TransportError`."""

    async def send_message(self, recipient_id: str, message: OutboundMessage) -> None: ...

    async def set_command_menu(self, commands: list[tuple[str, str]]) -> None: ...
