"""
Shared configuration management for the pricing access layer.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden with an ``ACCESS_``-prefixed environment
    variable or a ``.env`` file entry, e.g. ``ACCESS_LOG_LEVEL=debug``.
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Observability
    enable_metrics: bool = False
    metrics_port: int = 9090
