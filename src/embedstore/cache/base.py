"""Common contract for record caches.

Every backend implements the point operations (``get``, ``set``, ``exists``,
``delete``), ``size``, ``clear_all_with_prefix`` and the two enumerations
(``each`` under the active prefix, ``full_each`` across all collections).
Everything else (collection discovery, tag aggregation, similarity ranking
and tag-based clearing) has a default implementation here that works on top
of those primitives. Backends with a faster native path override it (see
:class:`~embedstore.cache.sqlite_cache.SQLiteCache`).

Keys passed to the public operations are *unprefixed*; the enumerations yield
*prefixed* keys, as stored.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator, Optional, Union

import numpy as np

from embedstore.cache.records import Record
from embedstore.core.exceptions import DimensionMismatchError
from embedstore.utils.tags import Tags
from embedstore.utils.vectors import Vector, as_vector, cosine_similarity, norm

TagsArg = Union[None, str, Iterable[str], Tags]


def make_prefix(namespace: str, collection: str) -> str:
    """Key prefix ``"<namespace>-<collection>-"`` of one collection."""
    return f"{namespace}-{collection}-"


class CacheBackend(ABC):
    """Abstract base class for all record caches.

    Args:
        prefix: Prefix prepended to every key, selecting the active collection
    """

    def __init__(self, prefix: str):
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    @prefix.setter
    def prefix(self, value: str) -> None:
        self._prefix = value

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the value stored under *key*, or ``None``."""

    @abstractmethod
    def set(self, key: str, value: Any) -> Any:
        """Store *value* under *key* and return it."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether *key* is stored."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*; ``True`` if something was removed."""

    @abstractmethod
    def size(self) -> int:
        """Number of entries under the active prefix."""

    @abstractmethod
    def clear_all_with_prefix(self) -> "CacheBackend":
        """Remove every entry under the active prefix."""

    @abstractmethod
    def each(self) -> Iterator[tuple[str, Any]]:
        """Iterate ``(prefixed_key, value)`` pairs under the active prefix."""

    @abstractmethod
    def full_each(self) -> Iterator[tuple[str, Any]]:
        """Iterate ``(prefixed_key, value)`` pairs of every collection."""

    # ------------------------------------------------------------------
    # Prefix handling
    # ------------------------------------------------------------------

    def pre(self, key: str) -> str:
        return self._prefix + key

    def unpre(self, key: str) -> str:
        if key.startswith(self._prefix):
            return key[len(self._prefix):]
        return key

    def collections(self, scan_prefix: str) -> set[str]:
        """Names of all collections stored below *scan_prefix*.

        ``collections("Documents-")`` finds ``"default"`` in a key like
        ``"Documents-default-<hash>"``.
        """
        pattern = re.compile(r"\A" + re.escape(scan_prefix) + r"(.+)-")
        unique = set()
        for key, _ in self.full_each():
            match = pattern.match(key)
            if match:
                unique.add(match.group(1))
        return unique

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def convert_to_vector(self, vector: Vector) -> Any:
        return as_vector(vector)

    def tags(self) -> Tags:
        """Union of the tags of all records under the active prefix."""
        result = Tags()
        for _, value in self.each():
            record = Record.coerce(value)
            for tag in record.tags:
                result.add(tag, source=record.source)
        return result

    def find_records(
        self,
        needle: Vector,
        tags: TagsArg = None,
        max_records: Optional[int] = None,
    ) -> list[Record]:
        """Rank records under the active prefix by cosine similarity to *needle*.

        Args:
            needle: Query embedding
            tags: If given, only records sharing at least one tag are ranked
            max_records: Optional cap on the number of returned records

        Returns:
            Copies of the matching records, most similar first, with ``key``
            and ``similarity`` set. Equal scores keep enumeration order.
        """
        wanted = set(Tags(tags).to_list())
        needle = as_vector(needle)
        needle_norm = norm(needle)
        matches = []
        for key, value in self.each():
            record = Record.coerce(value)
            if wanted and not wanted.intersection(record.tags):
                continue
            if len(record.embedding) != needle.shape[0]:
                raise DimensionMismatchError(
                    "Needle embedding length does not match the stored record",
                    details={"key": key, "expected": len(record.embedding), "actual": needle.shape[0]},
                )
            similarity = cosine_similarity(
                needle,
                np.asarray(record.embedding, dtype=np.float32),
                a_norm=needle_norm,
                b_norm=record.norm,
            )
            matches.append(record.with_match(self.unpre(key), similarity))
        matches.sort(key=lambda r: r.similarity, reverse=True)
        if max_records is not None:
            matches = matches[:max_records]
        return matches

    # ------------------------------------------------------------------
    # Clearing
    # ------------------------------------------------------------------

    def clear_for_tags(self, tags: TagsArg) -> "CacheBackend":
        """Remove every record under the active prefix sharing a tag with *tags*."""
        wanted = set(Tags(tags).to_list())
        doomed = [
            key
            for key, value in self.each()
            if wanted.intersection(Record.coerce(value).tags)
        ]
        for key in doomed:
            self.delete(self.unpre(key))
        return self

    def clear(self, tags: TagsArg = None) -> "CacheBackend":
        """Remove records matching *tags*, or everything under the prefix."""
        tags = Tags(tags).to_list()
        if tags:
            self.clear_for_tags(tags)
        else:
            self.clear_all_with_prefix()
        return self

    # ------------------------------------------------------------------
    # Python protocol sugar
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Optional[Any]:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        self.delete(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.exists(key)

    def __len__(self) -> int:
        return self.size()

    def __bool__(self) -> bool:
        # An empty cache is still a usable cache
        return True

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return self.each()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(prefix={self._prefix!r})"
