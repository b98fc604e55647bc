"""In-memory cache fronting a redis cache.

Reads are served from a :class:`MemoryCache`; writes go to redis first and
then to memory, so a redis failure surfaces before the two stores can
diverge. On construction the memory store is hydrated with the full contents
of the redis namespace, which blocks until every key has been read.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

import redis

from embedstore.cache.base import CacheBackend, TagsArg
from embedstore.cache.memory_cache import MemoryCache
from embedstore.cache.records import Record
from embedstore.cache.redis_cache import RedisCache
from embedstore.core.constants import DEFAULT_NAMESPACE
from embedstore.core.logging import LogContext, get_logger
from embedstore.utils.tags import Tags

logger = get_logger(__name__)


class RedisBackedMemoryCache(CacheBackend):
    """Write-through memory cache with redis for durability and sharing.

    Args:
        prefix: Key prefix of the active collection
        url: Redis URL (default: ``$REDIS_URL``); required
        record_class: Class stored values are decoded into, in redis and in
            memory alike (default: :class:`Record`; ``None`` keeps plain dicts)
        namespace: Namespace loaded from redis on construction
        client: Pre-built redis client (the url is still required)

    Raises:
        ConfigError: If no redis url is configured
    """

    def __init__(
        self,
        prefix: str,
        url: Optional[str] = None,
        record_class: Optional[type[Record]] = Record,
        namespace: str = DEFAULT_NAMESPACE,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__(prefix)
        self._remote = RedisCache(
            prefix,
            url=url,
            record_class=record_class,
            namespace=namespace,
            client=client,
        )
        self._memory = MemoryCache(prefix)
        with LogContext(logger, "Hydrating memory cache from redis", namespace=namespace) as ctx:
            ctx.set(loaded=self._memory.hydrate(self._remote.full_each()))

    @property
    def prefix(self) -> str:
        return self._prefix

    @prefix.setter
    def prefix(self, value: str) -> None:
        self._prefix = value
        self._remote.prefix = value
        self._memory.prefix = value

    @property
    def record_class(self) -> Optional[type[Record]]:
        return self._remote.record_class

    @property
    def client(self) -> redis.Redis:
        return self._remote.client

    # ------------------------------------------------------------------
    # Reads: memory
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        return self._memory.get(key)

    def exists(self, key: str) -> bool:
        return self._memory.exists(key)

    def size(self) -> int:
        return self._memory.size()

    def each(self) -> Iterator[tuple[str, Any]]:
        return self._memory.each()

    def full_each(self) -> Iterator[tuple[str, Any]]:
        return self._remote.full_each()

    # ------------------------------------------------------------------
    # Writes: redis first, then memory
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any) -> Any:
        self._remote.set(key, value)
        # Memory holds what a hydrated instance would read back from redis
        if self.record_class is not None and isinstance(value, Mapping):
            self._memory.set(key, self.record_class.from_dict(value))
        else:
            self._memory.set(key, value)
        return value

    def delete(self, key: str) -> bool:
        removed_remote = self._remote.delete(key)
        removed_local = self._memory.delete(key)
        return removed_remote or removed_local

    def clear_for_tags(self, tags: TagsArg) -> "RedisBackedMemoryCache":
        wanted = set(Tags(tags).to_list())
        doomed = [
            self.unpre(key)
            for key, value in self._memory.each()
            if wanted.intersection(Record.coerce(value).tags)
        ]
        for key in doomed:
            self._remote.delete(key)
        for key in doomed:
            self._memory.delete(key)
        return self

    def clear_all_with_prefix(self) -> "RedisBackedMemoryCache":
        self._remote.clear_all_with_prefix()
        self._memory.clear_all_with_prefix()
        return self
