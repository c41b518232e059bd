"""
Configuration management.

Centralized environment variable management and validation.
"""

from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow case-insensitive env var matching
        extra="ignore"
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # LOG_DIR: when set, logs are also written to <LOG_DIR>/app.log (rotated at 100MB)
    log_dir: Optional[str] = None

    # Provider failover
    # ENABLED_PROVIDERS: comma-separated allow-list (e.g. "groq,openrouter,gemini").
    # Empty means every provider in the catalog is eligible.
    enabled_providers: str = ""
    failover_max_attempts_per_provider: int = 3
    failover_rate_limit_delay: float = 3.0
    failover_auth_delay: float = 0.5
    failover_server_error_delay: float = 2.0
    failover_unknown_delay: float = 0.5
    failover_max_backoff: float = 12.0
    provider_timeout_seconds: float = 90.0

    # Script generation
    # SCRIPT_BATCH_SIZE: scenes requested per continuation batch. The first batch
    # is always a single scene; 1 is the most stable setting against truncation.
    script_batch_size: int = 1
    script_batch_delay: float = 0.3
    script_max_scenes: int = 113
    script_default_scenes: int = 8
    script_credits_per_generation: int = 10
    # SCRIPT_DEADLINE_SECONDS: no new batch starts after this long; 0 disables it
    script_deadline_seconds: float = 900.0

    @field_validator("failover_max_attempts_per_provider", "script_batch_size", "script_max_scenes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Counts must be at least 1."""
        if v < 1:
            raise ConfigError("Attempt, batch and scene limits must be at least 1")
        return v

    @field_validator(
        "failover_rate_limit_delay",
        "failover_auth_delay",
        "failover_server_error_delay",
        "failover_unknown_delay",
        "failover_max_backoff",
        "script_batch_delay",
    )
    @classmethod
    def validate_delay(cls, v: float) -> float:
        """Delays are seconds and cannot be negative."""
        if v < 0:
            raise ConfigError("Delays must be >= 0 seconds")
        return v

    @field_validator("provider_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ConfigError("PROVIDER_TIMEOUT_SECONDS must be greater than 0")
        return v

    @field_validator("script_credits_per_generation")
    @classmethod
    def validate_credits(cls, v: int) -> int:
        if v < 0:
            raise ConfigError("SCRIPT_CREDITS_PER_GENERATION cannot be negative")
        return v

    @field_validator("script_deadline_seconds")
    @classmethod
    def validate_deadline(cls, v: float) -> float:
        if v < 0:
            raise ConfigError("SCRIPT_DEADLINE_SECONDS cannot be negative")
        return v

    @property
    def enabled_provider_list(self) -> List[str]:
        """
        Parsed ENABLED_PROVIDERS allow-list.

        Names are lower-cased and de-duplicated, preserving order.
        """
        names: List[str] = []
        for raw in self.enabled_providers.split(","):
            name = raw.strip().lower()
            if name and name not in names:
                names.append(name)
        return names


# Singleton instance
try:
    settings = Settings()
except Exception as e:
    # Re-raise as ConfigError for consistency
    if isinstance(e, ConfigError):
        raise
    raise ConfigError(f"Failed to load configuration: {str(e)}") from e
