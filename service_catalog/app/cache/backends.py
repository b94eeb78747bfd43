"""
Cache backends for the Catalog Service.

Backends store string payloads under string keys with a TTL and support
prefix removal for invalidation. Any backend failure is raised as
CacheUnavailableError; the caching repository decides what to do with it.
"""

import re
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config import CatalogConfig
from shared.errors import CacheUnavailableError
from shared.logging import get_logger


class CacheBackend(ABC):
    """Key-value cache with per-entry TTL."""

    async def start(self):
        """Start the backend."""

    async def stop(self):
        """Stop the backend."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Cached value, or None on miss or expiry."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value that expires after ttl_seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Remove keys, returning how many existed."""

    @abstractmethod
    async def clear_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix, returning the count."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry owned by this backend."""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Backend statistics."""


class MemoryCache(CacheBackend):
    """
    In-process TTL cache.

    Safe to share between tasks and threads: the lock guards only dict
    operations and is never held across an await. Expired entries are
    dropped lazily on read, on purge_expired(), and when the cache is full.
    """

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self.logger = get_logger("catalog.cache.memory")
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                self._misses += 1
                return None

            self._hits += 1
            return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        now = self._clock()
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._purge_expired_locked(now)
                if len(self._entries) >= self.max_entries:
                    # Evict the entry closest to expiry
                    victim = min(self._entries, key=lambda k: self._entries[k][1])
                    del self._entries[victim]
                    self._evictions += 1
            self._entries[key] = (value, now + ttl_seconds)

    async def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            return removed

    async def clear_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        self.logger.info("Memory cache cleared")

    async def purge_expired(self) -> int:
        """Drop expired entries, returning how many were removed."""
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def _purge_expired_locked(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / total if total else 0.0
            }


class RedisCache(CacheBackend):
    """Redis caching layer; owns the keys under its namespace."""

    def __init__(self, redis_url: str, namespace: str = "catalog:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.namespace = namespace
        self.logger = get_logger("catalog.cache.redis")
        self.redis: Optional[redis.Redis] = client

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        return self.redis

    async def start(self):
        """Start the Redis cache."""
        try:
            await self._get_redis().ping()
            self.logger.info("Redis cache started")
        except (RedisError, OSError) as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheUnavailableError("Failed to start Redis cache", {"error": str(e)}) from e

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._get_redis().ping()
            return True
        except (RedisError, OSError):
            return False

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._get_redis().get(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("Redis get failed", {"key": key, "error": str(e)}) from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._get_redis().setex(key, ttl_seconds, value)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("Redis set failed", {"key": key, "error": str(e)}) from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._get_redis().delete(*keys)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("Redis delete failed", {"error": str(e)}) from e

    async def clear_prefix(self, prefix: str) -> int:
        # SCAN rather than KEYS so a large keyspace does not block the server
        pattern = re.sub(r"([*?\[\]\\])", r"\\\1", prefix) + "*"
        try:
            client = self._get_redis()
            keys = [key async for key in client.scan_iter(match=pattern, count=500)]
            removed = 0
            for start in range(0, len(keys), 500):
                removed += await client.delete(*keys[start:start + 500])
            return removed
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("Redis prefix clear failed", {"prefix": prefix, "error": str(e)}) from e

    async def clear(self) -> None:
        removed = await self.clear_prefix(self.namespace)
        self.logger.info("Redis cache cleared", namespace=self.namespace, count=removed)

    async def stats(self) -> Dict[str, Any]:
        try:
            info = await self._get_redis().info()
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("Redis info failed", {"error": str(e)}) from e

        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        total = hits + misses
        return {
            "backend": "redis",
            "redis_version": info.get("redis_version"),
            "used_memory": info.get("used_memory_human"),
            "keyspace_hits": hits,
            "keyspace_misses": misses,
            "hit_rate": hits / total if total else 0.0
        }


def create_cache_backend(config: CatalogConfig) -> CacheBackend:
    """Build the cache backend selected by configuration."""
    if config.cache_backend == "redis":
        return RedisCache(config.redis_url, namespace=config.cache_key_prefix)
    return MemoryCache(max_entries=config.cache_max_entries)
