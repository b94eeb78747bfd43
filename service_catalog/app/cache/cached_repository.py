"""
Caching decorator over a catalog repository.

Reads are cache-aside: look up the key derived from the full query shape,
return the cached payload on hit, otherwise call the inner repository and
cache its result for a fixed TTL. Writes go to the inner repository first
and, once it succeeds, evict every key under this repository's prefix.

Consistency notes:
- The inner repository is authoritative; cache failures fall back to it.
- Invalidation really evicts. A successful write never leaves a list or
  product entry behind to age out by TTL.
- A read whose store call overlaps a write may cache the pre-write result
  after the eviction ran. That entry lives at most one TTL.
- search() and exists() are never cached; a get_by_id() for a missing id
  is not cached either.
"""

from contextlib import nullcontext
from typing import Any, Awaitable, Callable, List, Optional, TYPE_CHECKING

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.errors import CacheUnavailableError
from shared.logging import get_logger
from ..catalog.models import Product, ProductCategory, ProductStatus
from ..catalog.repository import CatalogRepository
from .backends import CacheBackend

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_CACHE_TTL_SECONDS = 300
DEFAULT_KEY_PREFIX = "catalog:"

_PRODUCT = TypeAdapter(Product)
_PRODUCT_LIST = TypeAdapter(List[Product])
_MISS = object()


class CachedCatalogRepository(CatalogRepository):
    """Catalog repository that serves repeated reads from a cache."""

    def __init__(
        self,
        inner: CatalogRepository,
        cache: CacheBackend,
        *,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        metrics: Optional["MetricsCollector"] = None
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if not key_prefix:
            raise ValueError("key_prefix must not be empty")

        self.inner = inner
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.metrics = metrics
        self.logger = get_logger("catalog.cache.repository")

    # Cache keys

    def product_key(self, product_id: int, include_images: bool, read_only: bool) -> str:
        return f"{self.key_prefix}product:{product_id}:images={include_images}:read_only={read_only}"

    def list_key(self, scope: str, include_images: bool, value: Optional[str] = None) -> str:
        scope_part = f"{scope}:{value}" if value is not None else scope
        return f"{self.key_prefix}products:{scope_part}:images={include_images}"

    # Reads

    async def get_by_id(
        self,
        product_id: int,
        include_images: bool = False,
        read_only: bool = False
    ) -> Optional[Product]:
        return await self._read_through(
            "get_by_id",
            self.product_key(product_id, include_images, read_only),
            _PRODUCT,
            lambda: self.inner.get_by_id(product_id, include_images, read_only)
        )

    async def get_all(self, include_images: bool = False) -> List[Product]:
        return await self._read_through(
            "get_all",
            self.list_key("all", include_images),
            _PRODUCT_LIST,
            lambda: self.inner.get_all(include_images)
        )

    async def get_public(self, include_images: bool = False) -> List[Product]:
        return await self._read_through(
            "get_public",
            self.list_key("public", include_images),
            _PRODUCT_LIST,
            lambda: self.inner.get_public(include_images)
        )

    async def get_by_category(self, category: ProductCategory, include_images: bool = False) -> List[Product]:
        category = ProductCategory(category)
        return await self._read_through(
            "get_by_category",
            self.list_key("category", include_images, category.value),
            _PRODUCT_LIST,
            lambda: self.inner.get_by_category(category, include_images)
        )

    async def get_by_status(self, status: ProductStatus, include_images: bool = False) -> List[Product]:
        status = ProductStatus(status)
        return await self._read_through(
            "get_by_status",
            self.list_key("status", include_images, status.value),
            _PRODUCT_LIST,
            lambda: self.inner.get_by_status(status, include_images)
        )

    async def search(self, term: str, include_images: bool = False) -> List[Product]:
        return await self.inner.search(term, include_images)

    async def exists(self, product_id: int) -> bool:
        return await self.inner.exists(product_id)

    # Writes

    async def add(self, product: Product) -> Product:
        result = await self.inner.add(product)
        await self._invalidate("add", result.id)
        return result

    async def update(self, product: Product) -> Product:
        result = await self.inner.update(product)
        await self._invalidate("update", result.id)
        return result

    async def delete(self, product_id: int) -> None:
        await self.inner.delete(product_id)
        await self._invalidate("delete", product_id)

    async def clear_cache(self) -> int:
        """Evict every entry under this repository's prefix."""
        return await self._invalidate("clear", None)

    # Internals

    async def _read_through(
        self,
        operation: str,
        key: str,
        adapter: TypeAdapter,
        load: Callable[[], Awaitable[Any]]
    ) -> Any:
        cached = await self._cache_get(operation, key, adapter)
        if cached is not _MISS:
            self.logger.debug("Cache hit", operation=operation, cache_key=key)
            self._count("catalog_cache_hits_total", operation)
            return cached

        self.logger.debug("Cache miss", operation=operation, cache_key=key)
        self._count("catalog_cache_misses_total", operation)

        timer = (
            self.metrics.time_operation("catalog_store_duration_seconds", operation=operation)
            if self.metrics else nullcontext()
        )
        with timer:
            result = await load()

        # Absent products are never cached
        if result is not None:
            await self._cache_set(operation, key, adapter, result)
        return result

    async def _cache_get(self, operation: str, key: str, adapter: TypeAdapter) -> Any:
        try:
            payload = await self.cache.get(key)
        except CacheUnavailableError as e:
            self._cache_failure(operation, "get", e)
            return _MISS

        if payload is None:
            return _MISS

        try:
            return adapter.validate_json(payload)
        except PydanticValidationError as e:
            self.logger.warning("Discarding undecodable cache entry", cache_key=key, error=str(e))
            self._count("catalog_cache_errors_total", operation)
            try:
                await self.cache.delete(key)
            except CacheUnavailableError as delete_error:
                self._cache_failure(operation, "delete", delete_error)
            return _MISS

    async def _cache_set(self, operation: str, key: str, adapter: TypeAdapter, value: Any) -> None:
        payload = adapter.dump_json(value).decode("utf-8")
        try:
            await self.cache.set(key, payload, self.ttl_seconds)
        except CacheUnavailableError as e:
            self._cache_failure(operation, "set", e)

    async def _invalidate(self, operation: str, product_id: Optional[int]) -> int:
        """Evict the whole catalog namespace, returning the number of keys removed."""
        try:
            evicted = await self.cache.clear_prefix(self.key_prefix)
        except CacheUnavailableError as e:
            # Entries that survive expire within one TTL
            self._cache_failure(operation, "invalidate", e)
            return 0

        self.logger.info(
            "Invalidated catalog cache",
            operation=operation,
            product_id=product_id,
            evicted=evicted
        )
        self._count("catalog_cache_invalidations_total", operation)
        return evicted

    def _cache_failure(self, operation: str, action: str, error: CacheUnavailableError) -> None:
        self.logger.warning(
            "Cache unavailable, falling back to store",
            operation=operation,
            action=action,
            error=error.message,
            details=error.details
        )
        self._count("catalog_cache_errors_total", operation)

    def _count(self, metric_name: str, operation: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, operation=operation)
