"""Pytest fixtures and configuration for embedstore tests.

This module provides reusable fixtures for testing:
- A fake redis client and redis URL
- Sample records and a factory building every cache backend

Usage:
    def test_something(make_cache, sample_records):
        cache = make_cache("memory")
        for key, record in sample_records.items():
            cache.set(key, record)
"""

import pytest

from embedstore.cache import (
    MemoryCache,
    Record,
    RedisBackedMemoryCache,
    RedisCache,
)
from embedstore.core.constants import REDIS_URL_ENV
from shared_mocks import FAKE_REDIS_URL, PREFIX, FakeRedis, make_record

ALL_BACKENDS = ["memory", "redis", "redis_backed_memory", "sqlite"]


# === Redis ===


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Fresh in-process redis stand-in."""
    return FakeRedis()


@pytest.fixture
def redis_url(monkeypatch) -> str:
    """Point $REDIS_URL at a (never contacted) redis server."""
    monkeypatch.setenv(REDIS_URL_ENV, FAKE_REDIS_URL)
    return FAKE_REDIS_URL


@pytest.fixture
def no_redis_url(monkeypatch):
    """Make sure $REDIS_URL is unset."""
    monkeypatch.delenv(REDIS_URL_ENV, raising=False)


# === Sample Data ===


@pytest.fixture
def sample_records() -> dict:
    """Three 2-dimensional records keyed by their unprefixed cache key."""
    return {
        "k-east": make_record("east", [1.0, 0.0], tags=["compass", "east"]),
        "k-north": make_record("north", [0.0, 1.0], tags=["compass"], source="https://example.com/n"),
        "k-northeast": make_record("northeast", [0.7, 0.7], tags=["diagonal"]),
    }


# === Cache factory ===


@pytest.fixture
def make_cache(fake_redis):
    """Factory building a cache of the given backend type over shared state.

    Redis based caches built by the same factory share one ``FakeRedis``.
    SQLite caches are skipped when ``sqlite_vec`` is not installed.
    """
    built = []

    def _make(backend, prefix=PREFIX, embedding_length=2):
        if backend == "memory":
            cache = MemoryCache(prefix)
        elif backend == "redis":
            cache = RedisCache(prefix, url=FAKE_REDIS_URL, record_class=Record, client=fake_redis)
        elif backend == "redis_backed_memory":
            cache = RedisBackedMemoryCache(
                prefix, url=FAKE_REDIS_URL, record_class=Record, client=fake_redis
            )
        elif backend == "sqlite":
            pytest.importorskip("sqlite_vec")
            from embedstore.cache import SQLiteCache

            cache = SQLiteCache(prefix, embedding_length=embedding_length)
        else:
            raise ValueError(f"Unknown backend: {backend}")
        built.append(cache)
        return cache

    yield _make

    for cache in built:
        if hasattr(cache, "close"):
            cache.close()


@pytest.fixture(params=ALL_BACKENDS)
def cache(request, make_cache):
    """One cache per backend type, with 2-dimensional embeddings."""
    return make_cache(request.param)
