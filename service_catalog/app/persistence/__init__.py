"""
Persistence package for the Catalog Service.

Catalog stores own durable CRUD and filtered queries over products and
their images. They hold no caching logic: every call reaches the backing
store.

- postgres: asyncpg-backed store (production).
- memory: process-local store (local development, tests).
"""

from shared.config import CatalogConfig
from ..catalog.repository import CatalogRepository
from .memory import InMemoryCatalogStore
from .postgres import PostgreSQLCatalogStore


def create_catalog_store(config: CatalogConfig) -> CatalogRepository:
    """Build the catalog store selected by configuration."""
    if config.store_backend == "postgres":
        return PostgreSQLCatalogStore(
            config.postgres_dsn,
            min_pool_size=config.postgres_min_pool_size,
            max_pool_size=config.postgres_max_pool_size,
            command_timeout=config.postgres_command_timeout
        )
    return InMemoryCatalogStore()
