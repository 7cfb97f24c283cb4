from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg
import pytest

from fitness_coach.db import FitnessDB
from fitness_coach.errors import RepositoryError
from fitness_coach.models import Goal, Language, SubscriptionTier, TimeOfDay


@pytest.fixture
def conn(monkeypatch):
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.__exit__.return_value = False
    monkeypatch.setattr("fitness_coach.db.psycopg.connect", MagicMock(return_value=conn))
    return conn


def test_schema_is_bootstrapped(conn):
    FitnessDB("postgresql://localhost/fitness")
    statements = " ".join(call.args[0] for call in conn.execute.call_args_list)
    assert "CREATE TABLE IF NOT EXISTS users" in statements
    assert "CREATE TABLE IF NOT EXISTS notification_log" in statements


def test_connection_failure_becomes_repository_error(monkeypatch):
    monkeypatch.setattr(
        "fitness_coach.db.psycopg.connect",
        MagicMock(side_effect=psycopg.OperationalError("connection refused")),
    )
    with pytest.raises(RepositoryError):
        FitnessDB("postgresql://localhost/fitness")


def test_get_user_maps_row(conn):
    db = FitnessDB("postgresql://localhost/fitness")
    now = datetime(2026, 3, 2, tzinfo=timezone.utc)
    conn.execute.return_value.fetchone.return_value = {
        "user_id": "42",
        "name": "Anna",
        "language": "en",
        "goal": "muscle_gain",
        "subscription": "full",
        "subscription_expires_at": now,
        "workout_time": "morning",
        "workout_days": [0, 2],
        "phone": None,
        "created_at": now,
        "last_active_at": now,
    }

    user = db.get_user_by_id("42")
    assert user.language is Language.EN
    assert user.goal is Goal.MUSCLE_GAIN
    assert user.subscription is SubscriptionTier.FULL
    assert user.workout_time is TimeOfDay.MORNING
    assert user.workout_days == frozenset({0, 2})


def test_update_user_rejects_unknown_fields(conn):
    db = FitnessDB("postgresql://localhost/fitness")
    with pytest.raises(ValueError):
        db.update_user("42", subscription="full")


def test_update_user_stores_enum_values(conn):
    db = FitnessDB("postgresql://localhost/fitness")
    db.update_user("42", language=Language.RU, workout_days={4, 1})

    sql, params = conn.execute.call_args.args
    assert sql == "UPDATE users SET language = %s, workout_days = %s WHERE user_id = %s"
    assert params == ("ru", [1, 4], "42")
