"""
Cache package for the Catalog Service.

Provides the cache backends (in-process memory, Redis) and the caching
repository decorator that serves repeated catalog reads from them while
the catalog store stays authoritative.
"""
