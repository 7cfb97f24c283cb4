from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import psycopg
from psycopg.rows import dict_row

from fitness_coach.errors import RepositoryError
from fitness_coach.models import (
    Goal,
    Language,
    SubscriptionTier,
    TimeOfDay,
    User,
    WorkoutLog,
)

USER_COLUMNS = (
    "user_id, name, language, goal, subscription, subscription_expires_at, "
    "workout_time, workout_days, phone, created_at, last_active_at"
)

UPDATABLE_FIELDS = {
    "name",
    "language",
    "goal",
    "workout_time",
    "workout_days",
    "phone",
    "last_active_at",
}


class FitnessDB:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._init_db()

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self.database_url, row_factory=dict_row)

    @contextmanager
    def _session(self) -> Iterator[psycopg.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except psycopg.Error as exc:
            raise RepositoryError(str(exc)) from exc

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _init_db(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    language TEXT NOT NULL DEFAULT 'ru',
                    goal TEXT NOT NULL DEFAULT 'maintenance',
                    subscription TEXT NOT NULL DEFAULT 'none',
                    subscription_expires_at TIMESTAMPTZ,
                    workout_time TEXT NOT NULL DEFAULT 'evening',
                    workout_days INTEGER[] NOT NULL DEFAULT '{}',
                    phone TEXT,
                    created_at TIMESTAMPTZ NOT NULL,
                    last_active_at TIMESTAMPTZ NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workout_logs (
                    id BIGSERIAL PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(user_id),
                    exercise TEXT NOT NULL,
                    logged_at TIMESTAMPTZ NOT NULL,
                    reps INTEGER,
                    sets INTEGER,
                    weight DOUBLE PRECISION,
                    duration_minutes INTEGER,
                    note TEXT NOT NULL DEFAULT ''
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notification_log (
                    id BIGSERIAL PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    trigger_name TEXT NOT NULL,
                    period_key TEXT NOT NULL,
                    sent_at TIMESTAMPTZ NOT NULL,
                    UNIQUE(user_id, trigger_name, period_key)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS workout_logs_user_time ON workout_logs (user_id, logged_at)"
            )

    @staticmethod
    def _row_to_user(row: dict) -> User:
        return User(
            user_id=str(row["user_id"]),
            name=str(row["name"]),
            language=Language(row["language"]),
            goal=Goal(row["goal"]),
            subscription=SubscriptionTier(row["subscription"]),
            subscription_expires_at=row["subscription_expires_at"],
            workout_time=TimeOfDay(row["workout_time"]),
            workout_days=frozenset(int(day) for day in row["workout_days"] or ()),
            phone=row["phone"],
            created_at=row["created_at"],
            last_active_at=row["last_active_at"],
        )

    @staticmethod
    def _column_value(value: object) -> object:
        if isinstance(value, (Language, Goal, SubscriptionTier, TimeOfDay)):
            return value.value
        if isinstance(value, (set, frozenset)):
            return sorted(int(day) for day in value)
        return value

    def create_user(self, user: User) -> User:
        now = self._now()
        created_at = user.created_at or now
        last_active_at = user.last_active_at or now
        with self._session() as conn:
            # A retried onboarding write must not fail on the row it already created.
            conn.execute(
                f"""
                INSERT INTO users ({USER_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id) DO NOTHING
                """,
                (
                    user.user_id,
                    user.name.strip(),
                    user.language.value,
                    user.goal.value,
                    user.subscription.value,
                    user.subscription_expires_at,
                    user.workout_time.value,
                    sorted(user.workout_days),
                    user.phone,
                    created_at,
                    last_active_at,
                ),
            )
        user.created_at = created_at
        user.last_active_at = last_active_at
        return user

    def get_user_by_id(self, user_id: str) -> User | None:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT {USER_COLUMNS} FROM users WHERE user_id = %s",
                (user_id,),
            ).fetchone()
        return self._row_to_user(row) if row else None

    def update_user(self, user_id: str, **fields: object) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        assignments = ", ".join(f"{name} = %s" for name in fields)
        values = [self._column_value(value) for value in fields.values()]
        with self._session() as conn:
            conn.execute(
                f"UPDATE users SET {assignments} WHERE user_id = %s",
                (*values, user_id),
            )

    def update_subscription(
        self, user_id: str, tier: SubscriptionTier, expires_at: datetime | None
    ) -> None:
        with self._session() as conn:
            conn.execute(
                """
                UPDATE users
                SET subscription = %s, subscription_expires_at = %s
                WHERE user_id = %s
                """,
                (tier.value, expires_at, user_id),
            )

    def users_with_expiring_subscription(self, days_ahead: int, now: datetime) -> list[User]:
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE subscription <> %s
                  AND subscription_expires_at > %s
                  AND subscription_expires_at <= %s
                ORDER BY subscription_expires_at
                """,
                (SubscriptionTier.NONE.value, now, now + timedelta(days=days_ahead)),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def users_by_workout_time_preference(self, time_of_day: TimeOfDay) -> list[User]:
        with self._session() as conn:
            rows = conn.execute(
                f"SELECT {USER_COLUMNS} FROM users WHERE workout_time = %s ORDER BY created_at",
                (time_of_day.value,),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def all_recently_active_users(self, since_days: int, now: datetime) -> list[User]:
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT {USER_COLUMNS}
                FROM users u
                WHERE u.last_active_at >= %s
                   OR EXISTS (
                       SELECT 1 FROM workout_logs w
                       WHERE w.user_id = u.user_id AND w.logged_at >= %s
                   )
                ORDER BY created_at
                """,
                (now - timedelta(days=since_days), now - timedelta(days=since_days)),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def all_users(self) -> list[User]:
        with self._session() as conn:
            rows = conn.execute(
                f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at"
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def workout_logs_for_user_in_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[WorkoutLog]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT user_id, exercise, logged_at, reps, sets, weight, duration_minutes, note
                FROM workout_logs
                WHERE user_id = %s AND logged_at >= %s AND logged_at < %s
                ORDER BY logged_at
                """,
                (user_id, start, end),
            ).fetchall()
        return [
            WorkoutLog(
                user_id=str(r["user_id"]),
                exercise=str(r["exercise"]),
                logged_at=r["logged_at"],
                reps=r["reps"],
                sets=r["sets"],
                weight=r["weight"],
                duration_minutes=r["duration_minutes"],
                note=r["note"] or "",
            )
            for r in rows
        ]

    def notification_sent(self, user_id: str, trigger: str, period_key: str) -> bool:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT 1
                FROM notification_log
                WHERE user_id = %s AND trigger_name = %s AND period_key = %s
                LIMIT 1
                """,
                (user_id, trigger, period_key),
            ).fetchone()
        return row is not None

    def mark_notification_sent(self, user_id: str, trigger: str, period_key: str) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO notification_log (user_id, trigger_name, period_key, sent_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id, trigger_name, period_key) DO NOTHING
                """,
                (user_id, trigger, period_key, self._now()),
            )
