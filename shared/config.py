"""
Shared configuration management for the learning platform services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEARNING_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache store
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_cluster: bool = Field(default=False)
    redis_socket_timeout: float = Field(default=5.0, gt=0)
    cache_default_ttl: int = Field(default=3600, gt=0)
    registry_prefix: str = Field(default="registry:")

    # Deferred tasks
    task_history_capacity: int = Field(default=100, ge=1)
    deferred_task_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    deferred_shutdown_grace_seconds: float = Field(default=10.0, ge=0)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: Optional[str] = Field(default=None)
    enable_console_tracing: bool = Field(default=False)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
