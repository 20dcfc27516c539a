import pytest
from pydantic import ValidationError

from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.settings import Settings


@pytest.mark.parametrize(
    "env_value, expected",
    [
        (None, frozenset()),
        ("monthly", frozenset({"monthly"})),
        ("Custom, biweekly", frozenset({"custom", "biweekly"})),
    ],
)
def test_disabled_patterns_env_parsing(monkeypatch, env_value, expected):
    if env_value is None:
        monkeypatch.delenv("DISABLED_PATTERNS", raising=False)
    else:
        monkeypatch.setenv("DISABLED_PATTERNS", env_value)

    settings = Settings(_env_file=None)

    assert settings.disabled_patterns == expected
    assert RecurringConfig.from_settings(settings).disabled_patterns == expected


def test_unknown_disabled_pattern_is_rejected(monkeypatch):
    monkeypatch.setenv("DISABLED_PATTERNS", "daily,yearly")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_unused_env_flags_are_ignored(monkeypatch):
    monkeypatch.setenv("TESTING", "true")
    monkeypatch.setenv("MAX_OCCURRENCES", "40")

    settings = Settings(_env_file=None)

    assert "testing" not in Settings.model_fields
    assert not hasattr(settings, "testing")
    assert RecurringConfig.from_settings(settings).max_occurrences == 40
