"""Redis-backed record cache.

Values are stored as JSON text under ``<prefix><key>``. Enumeration, counting
and prefix clearing walk the keyspace with cursor-based ``SCAN`` so the number
of keys is never bounded by client memory.

Connectivity errors (``redis.exceptions.ConnectionError``) are not caught
here: a failed write always reaches the caller.
"""

from __future__ import annotations

import json
import os
from typing import Any, Iterator, Optional

import redis

from embedstore.cache.base import CacheBackend
from embedstore.cache.records import Record
from embedstore.core.constants import DEFAULT_NAMESPACE, REDIS_DELETE_BATCH, REDIS_URL_ENV
from embedstore.core.exceptions import ConfigError
from embedstore.core.logging import get_logger

logger = get_logger(__name__)

# Hint for keys returned per SCAN round-trip
_SCAN_COUNT = 1_000


def glob_escape(text: str) -> str:
    """Escape redis glob metacharacters so *text* matches literally."""
    return "".join(f"[{c}]" if c in "*?[" else c for c in text)


def resolve_redis_url(url: Optional[str]) -> str:
    """Return *url*, falling back to ``$REDIS_URL``; raise if neither is set."""
    url = url or os.environ.get(REDIS_URL_ENV)
    if not url:
        raise ConfigError(
            "A redis url is required",
            details={"env": REDIS_URL_ENV},
        )
    return url


class RedisCache(CacheBackend):
    """Record cache stored in a redis server.

    Args:
        prefix: Key prefix of the active collection
        url: Redis URL (default: ``$REDIS_URL``); required
        record_class: Decode stored values into this class (via ``from_dict``)
            instead of returning plain dicts
        ex: Default expiration in seconds for every ``set``
        namespace: Namespace shared by all collections, scanned by ``full_each``
        client: Pre-built redis client (the url is still required)

    Raises:
        ConfigError: If no redis url is configured
    """

    def __init__(
        self,
        prefix: str,
        url: Optional[str] = None,
        record_class: Optional[type[Record]] = None,
        ex: Optional[int] = None,
        namespace: str = DEFAULT_NAMESPACE,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__(prefix)
        self.url = resolve_redis_url(url)
        self.record_class = record_class
        self.ex = ex
        self.namespace = namespace
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self.url, decode_responses=True)
        return self._client

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _encode(self, value: Any) -> str:
        if isinstance(value, Record):
            value = value.to_dict()
        return json.dumps(value)

    def _decode(self, raw: str) -> Any:
        data = json.loads(raw)
        if self.record_class is not None and isinstance(data, dict):
            return self.record_class.from_dict(data)
        return data

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(self.pre(key))
        if raw is None:
            return None
        return self._decode(raw)

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> Any:
        """Store *value*; an expiration of zero or less deletes the key instead."""
        if ex is None:
            ex = self.ex
        if ex is not None and ex <= 0:
            self.client.delete(self.pre(key))
        else:
            self.client.set(self.pre(key), self._encode(value), ex=ex)
        return value

    def ttl(self, key: str) -> int:
        """Remaining time to live of *key* in seconds (redis ``TTL`` semantics)."""
        return self.client.ttl(self.pre(key))

    def exists(self, key: str) -> bool:
        return bool(self.client.exists(self.pre(key)))

    def delete(self, key: str) -> bool:
        return self.client.delete(self.pre(key)) == 1

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def _scan(self, pattern: str) -> Iterator[str]:
        return self.client.scan_iter(match=pattern, count=_SCAN_COUNT)

    def _prefix_pattern(self) -> str:
        return glob_escape(self.prefix) + "*"

    def size(self) -> int:
        return sum(1 for _ in self._scan(self._prefix_pattern()))

    def clear_all_with_prefix(self) -> "RedisCache":
        deleted = 0
        batch: list[str] = []
        for key in self._scan(self._prefix_pattern()):
            batch.append(key)
            if len(batch) >= REDIS_DELETE_BATCH:
                deleted += self.client.delete(*batch)
                batch = []
        if batch:
            deleted += self.client.delete(*batch)
        logger.debug("Redis cache: cleared %d keys under %s", deleted, self.prefix)
        return self

    def _items(self, pattern: str) -> Iterator[tuple[str, Any]]:
        for key in self._scan(pattern):
            raw = self.client.get(key)
            if raw is None:
                # expired or deleted between SCAN and GET
                continue
            yield key, self._decode(raw)

    def each(self) -> Iterator[tuple[str, Any]]:
        return self._items(self._prefix_pattern())

    def full_each(self) -> Iterator[tuple[str, Any]]:
        return self._items(glob_escape(self.namespace) + "-*")
