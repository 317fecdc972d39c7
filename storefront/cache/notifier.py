from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from typing import Any, Iterable, Protocol

import redis

from storefront.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ReadCache(Protocol):
    backend: str

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> None:
        ...

    def invalidate(self, key_pattern: str) -> int:
        ...


class NullReadCache:
    backend = "none"

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> None:
        return None

    def invalidate(self, key_pattern: str) -> int:
        return 0


class InMemoryReadCache:
    backend = "memory"

    def __init__(self):
        self._data: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> None:
        with self._lock:
            self._data[key] = (time.monotonic() + ttl_seconds, value)

    def invalidate(self, key_pattern: str) -> int:
        with self._lock:
            doomed = [key for key in self._data if fnmatch.fnmatchcase(key, key_pattern)]
            for key in doomed:
                del self._data[key]
        return len(doomed)


class RedisReadCache:
    backend = "redis"

    def __init__(self, url: str, key_prefix: str = "", client: redis.Redis | None = None):
        self.client = client or redis.Redis.from_url(url, socket_timeout=2, socket_connect_timeout=2)
        self.key_prefix = key_prefix

    def get(self, key: str) -> Any | None:
        raw = self.client.get(f"{self.key_prefix}{key}")
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> None:
        self.client.setex(f"{self.key_prefix}{key}", ttl_seconds, json.dumps(value, default=str))

    def invalidate(self, key_pattern: str) -> int:
        # SCAN instead of KEYS so a large keyspace does not block the server.
        keys = list(self.client.scan_iter(match=f"{self.key_prefix}{key_pattern}", count=500))
        if keys:
            self.client.delete(*keys)
        return len(keys)


class CacheNotifier:
    """Fire-and-forget invalidation on behalf of the engine.

    A failing cache must never fail the order or inventory operation that
    triggered the invalidation, so errors are logged and dropped here.
    """

    def __init__(self, cache: ReadCache | None = None):
        self.cache = cache or NullReadCache()

    def invalidate(self, key_pattern: str) -> None:
        try:
            removed = self.cache.invalidate(key_pattern)
        except Exception as exc:
            logger.warning("cache invalidate failed backend=%s pattern=%s: %s", self.cache.backend, key_pattern, exc)
            return
        logger.debug("cache invalidated pattern=%s removed=%s", key_pattern, removed)

    def invalidate_products(self, product_ids: Iterable[str], category_ids: Iterable[str | None] = ()) -> None:
        for product_id in dict.fromkeys(product_ids):
            self.invalidate(f"product:{product_id}*")
        for category_id in dict.fromkeys(c for c in category_ids if c):
            self.invalidate(f"category:{category_id}*")
        self.invalidate("products:*")


def build_read_cache(settings: Settings | None = None) -> ReadCache:
    settings = settings or get_settings()
    if settings.cache_backend == "redis":
        return RedisReadCache(settings.redis_url, key_prefix=settings.cache_key_prefix)
    if settings.cache_backend == "none":
        return NullReadCache()
    return InMemoryReadCache()
