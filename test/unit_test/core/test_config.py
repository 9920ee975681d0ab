"""Unit tests for the settings model.

Tests verify defaults, binding of ``DEEPAGENT_AI_*`` environment variables
and how per-agent configuration is seeded from settings.
"""

import pytest
from pydantic import ValidationError

from deepagent_ai.agent_core.runtime import AgentConfig
from deepagent_ai.core.config import Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(Settings.model_fields):
        alias = Settings.model_fields[name].alias
        if alias:
            monkeypatch.delenv(alias, raising=False)
    monkeypatch.chdir("/")
    return monkeypatch


class TestSettingsDefaults:
    """Test the process-wide defaults."""

    def test_defaults(self, clean_env):
        settings = Settings()
        assert settings.log_level == "INFO"
        assert settings.log_format == "detailed"
        assert settings.enable_file_logging is False
        assert settings.model_max_retries == 2
        assert settings.max_steps == 100
        assert settings.subagent_max_steps == 50
        assert settings.tool_result_eviction_limit == 20_000
        assert settings.summarization_threshold == 170_000
        assert settings.summarization_keep_messages == 6
        assert settings.checkpoint_database_url.startswith("sqlite+aiosqlite://")

    def test_field_names_accepted(self):
        settings = Settings(max_steps=5, default_model="test")
        assert settings.max_steps == 5
        assert settings.default_model == "test"


class TestSettingsBinding:
    """Test Settings model environment variable binding."""

    @pytest.mark.parametrize(
        "env_name,value,field,expected",
        [
            ("DEEPAGENT_AI_LOG_LEVEL", "DEBUG", "log_level", "DEBUG"),
            ("DEEPAGENT_AI_MODEL", "openai:gpt-4o", "default_model", "openai:gpt-4o"),
            ("DEEPAGENT_AI_MAX_STEPS", "12", "max_steps", 12),
            ("DEEPAGENT_AI_MODEL_RETRY_BACKOFF_SECONDS", "0.5", "model_retry_backoff_seconds", 0.5),
            ("DEEPAGENT_AI_ENABLE_FILE_LOGGING", "true", "enable_file_logging", True),
            ("DEEPAGENT_AI_SANDBOX_TIMEOUT_SECONDS", "3", "sandbox_timeout_seconds", 3.0),
        ],
    )
    def test_env_binding(self, clean_env, env_name, value, field, expected):
        clean_env.setenv(env_name, value)
        assert getattr(Settings(), field) == expected

    def test_invalid_values_rejected(self, clean_env):
        clean_env.setenv("DEEPAGENT_AI_MAX_STEPS", "0")
        with pytest.raises(ValidationError):
            Settings()


class TestAgentConfigFromSettings:
    """Test seeding AgentConfig from Settings."""

    def test_values_carried_over(self):
        settings = Settings(
            max_steps=9,
            model_max_retries=4,
            model_retry_backoff_seconds=0.25,
            summarization_threshold=1000,
            summarization_keep_messages=2,
        )
        config = AgentConfig.from_settings(settings)
        assert config.max_steps == 9
        assert config.max_retries == 4
        assert config.retry_backoff_seconds == 0.25
        assert config.summarization is not None
        assert config.summarization.token_threshold == 1000
        assert config.summarization.keep_messages == 2

    def test_overrides_win(self):
        config = AgentConfig.from_settings(Settings(), max_steps=3, summarization=None)
        assert config.max_steps == 3
        assert config.summarization is None
