"""
Tests for configuration management.
"""

import pytest

from shared.config import ConfigError, Settings


def test_settings_defaults(monkeypatch):
    """Defaults match the documented failover and script settings."""
    for name in ("ENABLED_PROVIDERS", "SCRIPT_BATCH_SIZE", "FAILOVER_MAX_ATTEMPTS_PER_PROVIDER"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.failover_max_attempts_per_provider == 3
    assert settings.failover_rate_limit_delay == 3.0
    assert settings.script_batch_size == 1
    assert settings.script_max_scenes == 113
    assert settings.enabled_provider_list == []


def test_settings_loads_env_file(tmp_path, monkeypatch):
    """Values are read from a .env file, case-insensitively."""
    monkeypatch.delenv("SCRIPT_BATCH_SIZE", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("script_batch_size=4\nLOG_LEVEL=DEBUG\nUNRELATED_VAR=x\n")

    settings = Settings(_env_file=str(env_file))

    assert settings.script_batch_size == 4
    assert settings.log_level == "DEBUG"


def test_enabled_provider_list_is_normalised(monkeypatch):
    monkeypatch.setenv("ENABLED_PROVIDERS", " Groq, openrouter,,groq ,GEMINI")

    settings = Settings(_env_file=None)

    assert settings.enabled_provider_list == ["groq", "openrouter", "gemini"]


def test_settings_rejects_zero_attempts(monkeypatch):
    monkeypatch.setenv("FAILOVER_MAX_ATTEMPTS_PER_PROVIDER", "0")

    with pytest.raises(ConfigError, match="at least 1"):
        Settings(_env_file=None)


def test_settings_rejects_negative_delay(monkeypatch):
    monkeypatch.setenv("SCRIPT_BATCH_DELAY", "-1")

    with pytest.raises(ConfigError, match=">= 0"):
        Settings(_env_file=None)


def test_settings_rejects_non_positive_timeout(monkeypatch):
    monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "0")

    with pytest.raises(ConfigError, match="PROVIDER_TIMEOUT_SECONDS"):
        Settings(_env_file=None)


def test_script_deadline_default_and_validation(monkeypatch):
    monkeypatch.delenv("SCRIPT_DEADLINE_SECONDS", raising=False)
    assert Settings(_env_file=None).script_deadline_seconds == 900.0

    monkeypatch.setenv("SCRIPT_DEADLINE_SECONDS", "-5")
    with pytest.raises(ConfigError, match="SCRIPT_DEADLINE_SECONDS"):
        Settings(_env_file=None)
