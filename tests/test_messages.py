import pytest

from fitness_coach.messages import CATALOG, PLURALS, MessageKey, PluralKey, plural, t
from fitness_coach.models import Language


def test_every_locale_has_every_message():
    for language in Language:
        assert set(CATALOG[language]) == set(MessageKey)


def test_plural_tables_cover_every_key():
    for language in Language:
        assert set(PLURALS[language]) == set(PluralKey)


@pytest.mark.parametrize(
    "n, expected",
    [(1, "день"), (2, "дня"), (5, "дней"), (11, "дней"), (21, "день"), (12, "дней"), (22, "дня"), (111, "дней")],
)
def test_russian_day_forms(n, expected):
    assert plural(Language.RU, PluralKey.DAY, n) == expected


@pytest.mark.parametrize("n, expected", [(1, "day"), (2, "days"), (5, "days"), (11, "days"), (21, "days")])
def test_english_day_forms(n, expected):
    assert plural(Language.EN, PluralKey.DAY, n) == expected


def test_russian_zero_uses_many_form():
    assert plural(Language.RU, PluralKey.WORKOUT, 0) == "тренировок"


def test_t_formats_parameters():
    assert t(Language.EN, MessageKey.WELCOME_BACK, name="Bob") == "Welcome back, Bob! How can I help you today?"


def test_t_defaults_to_russian():
    assert t(None, MessageKey.GENERIC_ERROR) == CATALOG[Language.RU][MessageKey.GENERIC_ERROR]
