"""Centralized configuration management using Pydantic Settings.

This module provides type-safe configuration with environment variable support,
validation, and defaults for the credential cipher and the Redis cache layer.

Configuration can be overridden via environment variables (e.g., REDIS_URL)
and is validated at startup. The cache is optional: when ``REDIS_DISABLED`` is
true or ``REDIS_URL`` is absent, every cache component runs permanently
disconnected and callers always fall through to the source of truth.

Example:
    Loading and validating settings:
    >>> from healthtrack.config.settings import Settings
    >>> settings = Settings(redis_url="redis://localhost:6379/0")
    >>> settings.validate_configuration()
    >>> settings.cache_enabled
    True
"""

import logging
from typing import Literal
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from healthtrack.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_REDIS_SCHEMES = ("redis", "rediss", "unix")


class Settings(BaseSettings):
    """Application settings loaded from environment variables with validation.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file (if present)
    3. Class defaults (lowest priority)

    Attributes:
        Redis connection settings and reconnect policy
        Cache TTL conventions per component
        Logging configuration
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # Redis Cache Configuration
    # ========================================================================

    redis_disabled: bool = Field(
        default=False,
        description="Disable the cache backend entirely (treated as permanently disconnected)",
    )

    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL, e.g. redis://localhost:6379/0. Absent means disabled",
    )

    redis_socket_timeout: float = Field(
        default=5.0,
        description="Socket connect/read timeout in seconds applied to every cache call",
        gt=0,
        le=60,
    )

    redis_max_connections: int = Field(
        default=20,
        description="Maximum connections in the Redis connection pool",
        ge=1,
        le=100,
    )

    redis_reconnect_base_delay: float = Field(
        default=0.05,
        description="First reconnect delay in seconds; doubled on every failed attempt",
        gt=0,
    )

    redis_reconnect_max_delay: float = Field(
        default=2.0,
        description="Upper bound for the reconnect delay in seconds",
        gt=0,
    )

    redis_reconnect_max_attempts: int = Field(
        default=10,
        description="Reconnect attempts before giving up (0 = retry forever)",
        ge=0,
    )

    # Cache TTL Settings (in seconds)
    ttl_session: int = Field(
        default=604800,
        description="TTL for session tokens (seconds, 7 days)",
    )

    ttl_profile: int = Field(
        default=1800,
        description="TTL for cached health snapshots (seconds, 30 minutes)",
    )

    ttl_request_cache: int = Field(
        default=3600,
        description="TTL for the generic request-cache wrapper (seconds, 1 hour)",
    )

    ttl_recommendation_rule_based: int = Field(
        default=7200,
        description="TTL for rule-based calorie recommendations (seconds, 2 hours)",
    )

    ttl_recommendation_model: int = Field(
        default=10800,
        description="TTL for model-derived calorie recommendations (seconds, 3 hours)",
    )

    ttl_perf_probe: int = Field(
        default=60,
        description="TTL for the diagnostic perf:test key (seconds)",
    )

    # ========================================================================
    # Logging Configuration
    # ========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level for application logs. DEBUG shows cache hits and misses",
    )

    # ========================================================================
    # Field Validators
    # ========================================================================

    @field_validator(
        "ttl_session",
        "ttl_profile",
        "ttl_request_cache",
        "ttl_recommendation_rule_based",
        "ttl_recommendation_model",
        "ttl_perf_probe",
    )
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        """Reject non-positive TTLs; Redis SETEX refuses them.

        Raises:
            ValueError: If the TTL is zero or negative
        """
        if value <= 0:
            raise ValueError(f"TTL must be a positive number of seconds, got {value}")
        return value

    @field_validator("redis_url", mode="before")
    @classmethod
    def blank_url_is_none(cls, value: str | None) -> str | None:
        """Treat an empty REDIS_URL the same as an absent one."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("redis_reconnect_max_delay")
    @classmethod
    def validate_backoff_cap(cls, max_delay: float, info) -> float:
        """Validate that the backoff cap is not below the base delay.

        Raises:
            ValueError: If redis_reconnect_max_delay < redis_reconnect_base_delay
        """
        base = info.data.get("redis_reconnect_base_delay")
        if base is not None and max_delay < base:
            raise ValueError(
                f"redis_reconnect_max_delay ({max_delay}) cannot be lower than "
                f"redis_reconnect_base_delay ({base})"
            )
        return max_delay

    # ========================================================================
    # Helper Properties
    # ========================================================================

    @property
    def cache_enabled(self) -> bool:
        """Whether the cache backend should attempt to connect at all."""
        return not self.redis_disabled and bool(self.redis_url)

    @property
    def redis_url_masked(self) -> str | None:
        """Redis URL with any password replaced by ``***`` for display."""
        if not self.redis_url:
            return None
        parts = urlsplit(self.redis_url)
        if parts.password is None:
            return self.redis_url
        netloc = parts.netloc.rsplit("@", 1)[-1]
        user = parts.username or ""
        return urlunsplit(parts._replace(netloc=f"{user}:***@{netloc}"))

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def validate_configuration(self) -> None:
        """Validate complete configuration at startup.

        Raises:
            ConfigurationError: If the cache is enabled with an unusable URL
        """
        logger.info("Validating application configuration...")

        if self.cache_enabled:
            scheme = urlsplit(self.redis_url).scheme
            if scheme not in _REDIS_SCHEMES:
                error_msg = (
                    f"REDIS_URL must use one of {', '.join(_REDIS_SCHEMES)} schemes, "
                    f"got '{scheme or 'none'}'"
                )
                logger.error(error_msg)
                raise ConfigurationError(
                    message=error_msg,
                    details={"redis_url": self.redis_url_masked},
                )
        else:
            logger.info("Redis cache disabled; running without cache acceleration")

        logger.info("Configuration validation passed")

    def print_config(self) -> None:
        """Print current configuration in a formatted table (sensitive data masked)."""
        from rich.console import Console
        from rich.table import Table

        console = Console()
        table = Table(title="healthtrack Configuration", show_header=True)
        table.add_column("Setting", style="cyan", no_wrap=False)
        table.add_column("Value", style="magenta", no_wrap=False)

        config_items = {
            "Cache Enabled": "✓ Enabled" if self.cache_enabled else "✗ Disabled",
            "Redis URL": self.redis_url_masked or "-",
            "Socket Timeout": f"{self.redis_socket_timeout}s",
            "Reconnect Backoff": (
                f"{self.redis_reconnect_base_delay}s → {self.redis_reconnect_max_delay}s "
                f"({self.redis_reconnect_max_attempts or '∞'} attempts)"
            ),
            "Session TTL": f"{self.ttl_session}s",
            "Profile TTL": f"{self.ttl_profile}s",
            "Request Cache TTL": f"{self.ttl_request_cache}s",
            "Recommendation TTL": (
                f"{self.ttl_recommendation_rule_based}s rule-based / "
                f"{self.ttl_recommendation_model}s model"
            ),
            "Log Level": self.log_level,
        }

        for key, value in config_items.items():
            table.add_row(key, str(value))

        console.print(table)


# Global settings instance - used as the default by components that are not
# handed an explicit Settings object
settings = Settings()


def print_config() -> None:
    """Convenience wrapper around ``settings.print_config()``."""
    settings.print_config()


if __name__ == "__main__":
    import sys

    from healthtrack.config.logging_setup import setup_logging

    setup_logging(settings.log_level)

    try:
        settings.validate_configuration()
        print_config()
        logger.info("✓ Configuration is valid and ready for use")
        sys.exit(0)

    except ConfigurationError as e:
        logger.error(f"✗ Configuration validation failed: {e}")
        sys.exit(1)
