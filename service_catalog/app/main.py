"""
Catalog service for handcrafted goods.

Portfolio browsing endpoints read through the cached catalog repository;
the catalog store is never called directly by a route.
"""

from typing import Dict, List, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import CatalogConfig
from shared.errors import CacheUnavailableError, NotFoundError

from .catalog.models import Product, ProductCategory, ProductStatus
from .catalog.repository import CatalogRepository
from .cache.backends import CacheBackend, create_cache_backend
from .cache.cached_repository import CachedCatalogRepository
from .persistence import create_catalog_store


class CatalogService(BaseService):
    """Catalog service implementation."""

    def __init__(
        self,
        config: Optional[CatalogConfig] = None,
        store: Optional[CatalogRepository] = None,
        cache: Optional[CacheBackend] = None
    ):
        super().__init__(config)

        # Initialize components
        self.store = store if store is not None else create_catalog_store(self.config)
        self.cache = cache if cache is not None else create_cache_backend(self.config)
        self.repository = CachedCatalogRepository(
            self.store,
            self.cache,
            ttl_seconds=self.config.cache_ttl_seconds,
            key_prefix=self.config.cache_key_prefix,
            metrics=self.metrics
        )

        self._setup_catalog_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.catalog_service = self

    def _setup_catalog_routes(self):
        """Set up catalog-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Handcrafted goods catalog",
                "version": "1.0.0",
                "capabilities": ["portfolio", "caching", "persistence"]
            }

        @self.app.get("/products")
        async def list_products(
            category: Optional[ProductCategory] = Query(None, description="Filter by category"),
            status: Optional[ProductStatus] = Query(None, description="Filter by status"),
            include_images: bool = Query(True, description="Include product images")
        ):
            """List public products, newest first."""
            if category is not None:
                products = await self.repository.get_by_category(category, include_images)
            elif status is not None:
                products = await self.repository.get_by_status(status, include_images)
            else:
                products = await self.repository.get_public(include_images)

            products = self._public_only(products)
            if category is not None and status is not None:
                products = [p for p in products if p.status == status]

            return {"count": len(products), "products": products}

        @self.app.get("/products/search")
        async def search_products(
            q: str = Query("", max_length=200, description="Search term; empty lists everything"),
            include_images: bool = Query(True, description="Include product images")
        ):
            """Search public products by name or description."""
            products = self._public_only(await self.repository.search(q, include_images))
            return {"query": q, "count": len(products), "products": products}

        @self.app.get("/products/{product_id}")
        async def get_product(
            product_id: int,
            include_images: bool = Query(True, description="Include product images")
        ):
            """Get a single public product."""
            product = await self.repository.get_by_id(product_id, include_images, read_only=True)
            # Private products are indistinguishable from missing ones
            if product is None or not product.is_public:
                raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
            return product

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Cache backend statistics."""
            try:
                return await self.cache.stats()
            except CacheUnavailableError as e:
                self.logger.warning("Cache stats unavailable", error=e.message, details=e.details)
                return {"backend": self.config.cache_backend, "status": "unavailable"}

    @staticmethod
    def _public_only(products: List[Product]) -> List[Product]:
        return [p for p in products if p.is_public]

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check catalog service dependencies."""
        dependencies = {}

        dependencies["store"] = "ok" if await self.store.health_check() else "error"
        dependencies["cache"] = "ok" if await self.cache.health_check() else "error"

        return dependencies

    async def start(self):
        """Start catalog service components."""
        await self.store.start()
        try:
            await self.cache.start()
        except CacheUnavailableError as e:
            # Reads fall back to the store until the cache comes back
            self.logger.warning("Cache unavailable at startup", error=e.message, details=e.details)
        self.logger.info(
            "Catalog service started",
            store_backend=self.config.store_backend,
            cache_backend=self.config.cache_backend,
            cache_ttl_seconds=self.config.cache_ttl_seconds
        )

    async def stop(self):
        """Stop catalog service components."""
        await self.cache.stop()
        await self.store.stop()

        self.logger.info("Catalog service stopped")


def create_app():
    """Create catalog service application."""
    service = CatalogService()
    return service.app


if __name__ == "__main__":
    service = CatalogService()
    service.run()
