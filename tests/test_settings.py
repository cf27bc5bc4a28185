"""Tests for settings and configuration."""

import pytest
from pydantic import ValidationError

from scoop.models.settings import Settings


def test_settings_defaults(monkeypatch):
    """Test that settings have proper default values."""
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("MAILERLITE_API_KEY", raising=False)
    monkeypatch.delenv("CRON_SECRET", raising=False)

    settings = Settings(_env_file=None)
    assert settings.debug is False
    assert settings.log_level == "INFO"
    assert settings.openrouter_api_key is None
    assert settings.mailerlite_api_key is None
    assert settings.subject_max_length == 35
    assert settings.max_active_articles == 5
    assert settings.subject_prefix == "🍦 "
    assert settings.review_send_time == "21:00"


def test_settings_from_env(monkeypatch):
    """Test that settings are loaded from environment variables."""
    monkeypatch.setenv("OPENROUTER_API_KEY", "test_openrouter_key")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("REGIONAL_BONUS", "4")

    settings = Settings(_env_file=None)
    assert settings.openrouter_api_key == "test_openrouter_key"
    assert settings.debug is True
    assert settings.log_level == "DEBUG"
    assert settings.regional_bonus == 4


def test_settings_case_insensitive(monkeypatch):
    """Test that environment variable names are case insensitive."""
    monkeypatch.setenv("mailerlite_api_key", "lowercase_key")
    settings = Settings(_env_file=None)
    assert settings.mailerlite_api_key == "lowercase_key"


def test_comma_separated_lists():
    settings = Settings(
        _env_file=None,
        ai_fallback_models=" model-a , ,model-b",
        local_communities="Sartell, Waite Park",
    )
    assert settings.fallback_models == ["model-a", "model-b"]
    assert settings.community_names == ["Sartell", "Waite Park"]


@pytest.mark.parametrize(
    "field,value",
    [
        ("review_send_time", "9pm"),
        ("openrouter_timeout", 1.0),
        ("evaluation_batch_size", 0),
        ("subject_max_length", 500),
    ],
)
def test_settings_validation_rejects_out_of_range(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})
