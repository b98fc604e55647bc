"""Process-local record cache backed by a plain dict.

Baseline backend and fallback when no remote store is reachable. Nothing is
persisted across process restarts.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional

from embedstore.cache.base import CacheBackend
from embedstore.core.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


class MemoryCache(CacheBackend):
    """In-memory cache keyed by prefixed key.

    Example::

        cache = MemoryCache(prefix="Documents-default-")
        cache.set("abc", record)
        cache.get("abc")        # record
        cache.size()            # 1
    """

    def __init__(self, prefix: str):
        super().__init__(prefix)
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(self.pre(key))

    def set(self, key: str, value: Any) -> Any:
        self._data[self.pre(key)] = value
        return value

    def exists(self, key: str) -> bool:
        return self.pre(key) in self._data

    def delete(self, key: str) -> bool:
        return self._data.pop(self.pre(key), _MISSING) is not _MISSING

    def size(self) -> int:
        return sum(1 for key in self._data if key.startswith(self.prefix))

    def clear_all_with_prefix(self) -> "MemoryCache":
        doomed = [key for key in self._data if key.startswith(self.prefix)]
        for key in doomed:
            del self._data[key]
        logger.debug("Memory cache: cleared %d entries under %s", len(doomed), self.prefix)
        return self

    def each(self) -> Iterator[tuple[str, Any]]:
        prefix = self.prefix
        for key, value in list(self._data.items()):
            if key.startswith(prefix):
                yield key, value

    def full_each(self) -> Iterator[tuple[str, Any]]:
        yield from list(self._data.items())

    def hydrate(self, items: Iterable[tuple[str, Any]]) -> int:
        """Load already-prefixed ``(key, value)`` pairs verbatim.

        Returns:
            Number of entries loaded.
        """
        count = 0
        for key, value in items:
            self._data[key] = value
            count += 1
        return count
