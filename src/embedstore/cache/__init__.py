"""Record caches for embedstore.

All backends implement the same :class:`CacheBackend` contract, so callers
pick one at construction time and stay backend-agnostic afterwards.

Backends:
    - MemoryCache: plain dict, process-local, no persistence
    - RedisCache: JSON values in redis, cursor-based scans
    - RedisBackedMemoryCache: MemoryCache hydrated from and written through to redis
    - SQLiteCache: SQLite + sqlite-vec, native KNN similarity search

Usage:
    from embedstore.cache import MemoryCache, Record

    cache = MemoryCache(prefix="Documents-default-")
    cache.set(key, Record(text="foo", embedding=[0.1], norm=0.1, tags=["test"]))
    cache.find_records([0.1], tags=["test"])
"""

from embedstore.cache.base import CacheBackend, make_prefix
from embedstore.cache.memory_cache import MemoryCache
from embedstore.cache.records import Record
from embedstore.cache.redis_backed_memory_cache import RedisBackedMemoryCache
from embedstore.cache.redis_cache import RedisCache
from embedstore.cache.sqlite_cache import SQLiteCache

__all__ = [
    "CacheBackend",
    "MemoryCache",
    "Record",
    "RedisBackedMemoryCache",
    "RedisCache",
    "SQLiteCache",
    "make_prefix",
]

