import pytest
from datetime import datetime, timedelta, timezone

from fitness_coach.conversation import ConversationEngine, InMemorySessionStore
from fitness_coach.errors import RepositoryError, TransportError
from fitness_coach.handlers import BotHandlers, HandlerConfig
from fitness_coach.models import InboundUpdate, Language, User
from fitness_coach.programs import OnboardingProgram, SupportProgram
from fitness_coach.relay import AdminRelay
from fitness_coach.router import CommandRouter

ADMIN_ID = "999"
APP_URL = "https://app.example.com"


class FakeRepository:
    """In-memory stand-in for FitnessDB."""

    def __init__(self):
        self.users = {}
        self.logs = []
        self.ledger = set()
        self.fail_writes = False
        self.fail_reads = False
        self.created = []

    def _check_read(self):
        if self.fail_reads:
            raise RepositoryError("read failed")

    def _check_write(self):
        if self.fail_writes:
            raise RepositoryError("write failed")

    def create_user(self, user):
        self._check_write()
        now = datetime.now(timezone.utc)
        user.created_at = user.created_at or now
        user.last_active_at = user.last_active_at or now
        self.users.setdefault(user.user_id, user)
        self.created.append(user.user_id)
        return user

    def get_user_by_id(self, user_id):
        self._check_read()
        return self.users.get(user_id)

    def update_user(self, user_id, **fields):
        self._check_write()
        user = self.users.get(user_id)
        if user is None:
            return
        for name, value in fields.items():
            setattr(user, name, value)

    def update_subscription(self, user_id, tier, expires_at):
        self._check_write()
        user = self.users[user_id]
        user.subscription = tier
        user.subscription_expires_at = expires_at

    def users_with_expiring_subscription(self, days_ahead, now):
        self._check_read()
        limit = now + timedelta(days=days_ahead)
        return [
            u for u in self.users.values()
            if u.subscription.value != "none"
            and u.subscription_expires_at is not None
            and now < u.subscription_expires_at <= limit
        ]

    def users_by_workout_time_preference(self, time_of_day):
        self._check_read()
        return [u for u in self.users.values() if u.workout_time == time_of_day]

    def all_recently_active_users(self, since_days, now):
        self._check_read()
        cutoff = now - timedelta(days=since_days)
        return [u for u in self.users.values() if u.last_active_at and u.last_active_at >= cutoff]

    def all_users(self):
        self._check_read()
        return list(self.users.values())

    def workout_logs_for_user_in_range(self, user_id, start, end):
        self._check_read()
        return [log for log in self.logs if log.user_id == user_id and start <= log.logged_at < end]

    def notification_sent(self, user_id, trigger, period_key):
        return (user_id, trigger, period_key) in self.ledger

    def mark_notification_sent(self, user_id, trigger, period_key):
        self.ledger.add((user_id, trigger, period_key))


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self.command_menu = None

    async def send_message(self, recipient_id, message):
        if recipient_id in self.fail_for:
            raise TransportError(recipient_id, "Forbidden: bot was blocked by the user")
        self.sent.append((recipient_id, message))

    async def set_command_menu(self, commands):
        self.command_menu = commands

    def messages_for(self, recipient_id):
        return [message for rid, message in self.sent if rid == recipient_id]

    def texts_for(self, recipient_id):
        return [message.text for message in self.messages_for(recipient_id)]

    def callbacks_for(self, recipient_id):
        return [
            button.callback_data
            for message in self.messages_for(recipient_id)
            for row in message.buttons
            for button in row
        ]


def make_user(user_id="1", name="Anna", **fields):
    fields.setdefault("language", Language.EN)
    fields.setdefault("last_active_at", datetime.now(timezone.utc))
    return User(user_id=user_id, name=name, **fields)


def text(recipient_id, value, **fields):
    return InboundUpdate(recipient_id=recipient_id, text=value, **fields)


def press(recipient_id, data, **fields):
    return InboundUpdate(recipient_id=recipient_id, callback_data=data, **fields)


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def relay(transport):
    return AdminRelay(transport, ADMIN_ID, Language.EN)


@pytest.fixture
def engine(repo, transport, relay):
    return ConversationEngine(
        InMemorySessionStore(),
        [
            OnboardingProgram(repo, transport, relay, APP_URL),
            SupportProgram(transport, relay),
        ],
    )


@pytest.fixture
def router(repo, transport, engine, relay):
    router = CommandRouter(repo, transport, engine)
    BotHandlers(repo, transport, engine, relay, HandlerConfig(mini_app_url=APP_URL)).register(router)
    return router
