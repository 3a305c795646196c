"""
Shared configuration management for the render cache layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RENDER_CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Caching
    perform_caching: bool = Field(default=True)
    store_backend: str = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    store_namespace: Optional[str] = Field(default="render_cache")
    fragment_namespace: str = Field(default="views")

    # Forgery protection
    allow_forgery_protection: bool = Field(default=True)
    forgery_protection_origin_check: bool = Field(default=True)
    log_warning_on_csrf_failure: bool = Field(default=True)
    forgery_protection_strategy: str = Field(default="null_session")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
