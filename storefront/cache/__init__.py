from storefront.cache.notifier import (
    CacheNotifier,
    InMemoryReadCache,
    NullReadCache,
    ReadCache,
    RedisReadCache,
    build_read_cache,
)

__all__ = [
    "CacheNotifier",
    "InMemoryReadCache",
    "NullReadCache",
    "ReadCache",
    "RedisReadCache",
    "build_read_cache",
]
