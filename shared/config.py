"""
Shared configuration management for the catalog service.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class CatalogConfig(BaseConfig):
    """Catalog service configuration."""

    service_name: str = "catalog"
    host: str = "0.0.0.0"
    port: int = 8020

    # Catalog store
    store_backend: Literal["memory", "postgres"] = Field(default="memory")
    postgres_dsn: str = Field(default="postgres://localhost:5432/catalog")
    postgres_min_pool_size: int = Field(default=2, ge=1)
    postgres_max_pool_size: int = Field(default=10, ge=1)
    postgres_command_timeout: float = Field(default=30.0, gt=0)

    # Cache
    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_ttl_seconds: int = Field(default=300, ge=1)  # 5 minutes
    cache_max_entries: int = Field(default=10000, ge=1)
    cache_key_prefix: str = Field(default="catalog:", min_length=1)


def get_config(**overrides) -> CatalogConfig:
    """Get catalog configuration, environment first, then explicit overrides."""
    return CatalogConfig(**overrides)
