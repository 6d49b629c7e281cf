"""
Lumen Voice Chat Service - Configuration.
Centralized service configuration using pydantic-settings.
"""
from __future__ import annotations
from functools import lru_cache
from typing import Any
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.session_registry import SessionRegistrySettings
from .infrastructure.collaborators import CollaboratorClientSettings
from .infrastructure.gemini_live import LiveAdapterSettings
from .infrastructure.redis_store import RedisSettings


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="VOICE_CHAT_OBSERVABILITY_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()


class VoiceChatServiceSettings(BaseSettings):
    """Main voice chat service configuration."""
    service_name: str = Field(default="voice-chat-service")
    service_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    durable_backend: str = Field(default="memory")
    use_http_collaborators: bool = Field(default=False)

    registry: SessionRegistrySettings = Field(default_factory=SessionRegistrySettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    live: LiveAdapterSettings = Field(default_factory=LiveAdapterSettings)
    clients: CollaboratorClientSettings = Field(default_factory=CollaboratorClientSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_prefix="VOICE_CHAT_",
        env_file=".env",
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        allowed = ["development", "testing", "staging", "production"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @field_validator("durable_backend")
    @classmethod
    def validate_durable_backend(cls, v: str) -> str:
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"Durable backend must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_debug(self) -> bool:
        return self.observability.debug and not self.is_production

    @property
    def live_enabled(self) -> bool:
        return self.live.is_configured

    def to_dict(self) -> dict[str, Any]:
        """Export configuration as dictionary (excluding secrets)."""
        return {
            "service_name": self.service_name,
            "service_version": self.service_version,
            "environment": self.environment,
            "durable_backend": self.durable_backend,
            "live": {"enabled": self.live_enabled, "model": self.live.model},
            "registry": {
                "live_response_timeout_seconds": self.registry.live_response_timeout_seconds,
                "idle_timeout_minutes": self.registry.idle_timeout_minutes,
                "enable_idle_reaping": self.registry.enable_idle_reaping,
            },
        }


@lru_cache
def get_settings() -> VoiceChatServiceSettings:
    """Get cached service settings singleton."""
    return VoiceChatServiceSettings()


def reset_settings() -> None:
    """Reset settings cache (for testing)."""
    get_settings.cache_clear()
