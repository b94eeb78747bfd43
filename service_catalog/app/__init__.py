"""
Catalog Service package.

Serves the handcrafted goods catalog (products and their images). It
provides:

- app.main: API surface for portfolio browsing and health.
- app.catalog: Product/image models and the repository contract.
- app.persistence: Catalog stores (PostgreSQL, in-memory).
- app.cache: Cache backends and the caching repository decorator.

Guidelines:
- Callers go through the cached repository, never the store directly.
- The store is the source of truth; the cache is disposable.
"""
