"""
Unit tests for Voice Chat Service Configuration.
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from services.voice_chat_service.src.config import (
    ObservabilitySettings,
    VoiceChatServiceSettings,
    get_settings,
    reset_settings,
)
from services.voice_chat_service.src.domain.session_registry import SessionRegistrySettings


class TestObservabilitySettings:
    """Tests for ObservabilitySettings configuration."""

    def test_log_level_normalized(self) -> None:
        assert ObservabilitySettings(log_level="warning").log_level == "WARNING"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(PydanticValidationError):
            ObservabilitySettings(log_level="LOUD")


class TestVoiceChatServiceSettings:
    """Tests for VoiceChatServiceSettings configuration."""

    def test_test_environment(self) -> None:
        """Test the root conftest environment is picked up."""
        settings = VoiceChatServiceSettings()
        assert settings.environment == "testing"
        assert settings.durable_backend == "memory"
        assert settings.live_enabled is False

    def test_nested_defaults(self) -> None:
        settings = VoiceChatServiceSettings()
        assert settings.registry.recent_emotions_limit == 10
        assert settings.redis.port == 6379
        assert settings.live.model == "gemini-2.5-flash-preview-native-audio-dialog"
        assert settings.clients.max_retries == 2

    def test_environment_validation(self) -> None:
        assert VoiceChatServiceSettings(environment="PRODUCTION").is_production is True
        with pytest.raises(PydanticValidationError):
            VoiceChatServiceSettings(environment="moon")

    def test_durable_backend_validation(self) -> None:
        assert VoiceChatServiceSettings(durable_backend="Redis").durable_backend == "redis"
        with pytest.raises(PydanticValidationError):
            VoiceChatServiceSettings(durable_backend="postgres")

    def test_debug_disabled_in_production(self) -> None:
        settings = VoiceChatServiceSettings(
            environment="production", observability=ObservabilitySettings(debug=True),
        )
        assert settings.is_debug is False

    def test_registry_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("VOICE_CHAT_REGISTRY_IDLE_TIMEOUT_MINUTES", "12")
        assert SessionRegistrySettings().idle_timeout_minutes == 12
        assert VoiceChatServiceSettings().registry.idle_timeout_minutes == 12

    def test_to_dict_excludes_secrets(self, monkeypatch) -> None:
        monkeypatch.setenv("VOICE_CHAT_LIVE_API_KEY", "super-secret")
        exported = VoiceChatServiceSettings().to_dict()
        assert exported["live"]["enabled"] is True
        assert "super-secret" not in str(exported)


class TestSettingsCache:
    """Tests for the cached settings accessor."""

    def test_cached_until_reset(self) -> None:
        reset_settings()
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
        reset_settings()
