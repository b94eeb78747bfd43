"""
Shared fixtures for Catalog Service tests.
"""

from collections import Counter

import pytest

from shared.metrics import MetricsCollector
from shared.test_helpers import CatalogDataFactory
from service_catalog.app.cache.backends import MemoryCache
from service_catalog.app.cache.cached_repository import CachedCatalogRepository
from service_catalog.app.catalog.repository import CatalogRepository
from service_catalog.app.persistence.memory import InMemoryCatalogStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class CallCountingRepository(CatalogRepository):
    """Pass-through repository that records every call it receives."""

    def __init__(self, inner: CatalogRepository):
        self.inner = inner
        self.calls = Counter()

    async def get_by_id(self, product_id, include_images=False, read_only=False):
        self.calls["get_by_id"] += 1
        return await self.inner.get_by_id(product_id, include_images, read_only)

    async def get_all(self, include_images=False):
        self.calls["get_all"] += 1
        return await self.inner.get_all(include_images)

    async def get_public(self, include_images=False):
        self.calls["get_public"] += 1
        return await self.inner.get_public(include_images)

    async def get_by_category(self, category, include_images=False):
        self.calls["get_by_category"] += 1
        return await self.inner.get_by_category(category, include_images)

    async def get_by_status(self, status, include_images=False):
        self.calls["get_by_status"] += 1
        return await self.inner.get_by_status(status, include_images)

    async def search(self, term, include_images=False):
        self.calls["search"] += 1
        return await self.inner.search(term, include_images)

    async def add(self, product):
        self.calls["add"] += 1
        return await self.inner.add(product)

    async def update(self, product):
        self.calls["update"] += 1
        return await self.inner.update(product)

    async def delete(self, product_id):
        self.calls["delete"] += 1
        return await self.inner.delete(product_id)

    async def exists(self, product_id):
        self.calls["exists"] += 1
        return await self.inner.exists(product_id)


@pytest.fixture
def factory():
    """Catalog data factory."""
    return CatalogDataFactory


@pytest.fixture
def store():
    """Empty in-memory catalog store."""
    return InMemoryCatalogStore()


@pytest.fixture
def counting_store(store):
    """Store wrapper counting calls that reach it."""
    return CallCountingRepository(store)


@pytest.fixture
def clock():
    """Controllable clock for TTL tests."""
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Memory cache driven by the fake clock."""
    return MemoryCache(max_entries=100, clock=clock)


@pytest.fixture
def metrics():
    """Isolated metrics collector."""
    return MetricsCollector("catalog")


@pytest.fixture
def repository(counting_store, cache, metrics):
    """Cached repository over the counting store."""
    return CachedCatalogRepository(counting_store, cache, ttl_seconds=300, metrics=metrics)
