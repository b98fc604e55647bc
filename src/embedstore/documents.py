"""Collection-scoped document store on top of a record cache.

``Documents`` keys each text by its SHA-256 digest inside the active
collection's prefix, obtains embeddings from an injected provider (anything
implementing :class:`~embedstore.core.protocols.HasEmbed`) and delegates
storage, ranking and tag filtering to the selected cache backend.

Example::

    documents = Documents(embedder, model="mxbai-embed-large", collection="notes")
    documents.add(["first text", "second text"], tags=["draft"])
    documents.find("query text", tags=["draft"], max_records=3)
"""

from __future__ import annotations

import hashlib
import os
import re
from typing import Any, Dict, Iterable, Optional, Union

import redis

from embedstore.cache import (
    CacheBackend,
    MemoryCache,
    Record,
    RedisBackedMemoryCache,
    RedisCache,
    SQLiteCache,
    make_prefix,
)
from embedstore.cache.base import TagsArg
from embedstore.config.schemas import StoreConfig
from embedstore.core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_COLLECTION,
    DEFAULT_EMBEDDING_LENGTH,
    DEFAULT_NAMESPACE,
    BackendType,
)
from embedstore.core.exceptions import EmbedStoreError
from embedstore.core.logging import get_logger
from embedstore.core.protocols import HasEmbed
from embedstore.utils.tags import Tags
from embedstore.utils.vectors import Vector, norm

logger = get_logger(__name__)


def text_key(text: str) -> str:
    """Cache key of *text*: its SHA-256 hex digest."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class Documents:
    """Embedding store for texts, partitioned into named collections.

    Args:
        embedder: Embedding provider
        model: Model identifier passed to the provider
        collection: Active collection (default: ``"default"``)
        embedding_length: Embedding length, used by the SQLite backend
        cache: A backend type, or an already constructed cache
        database_filename: SQLite database file (default: in memory)
        redis_url: Redis URL for the redis backends (default: ``$REDIS_URL``)
        model_options: Extra options passed to the provider
        namespace: Key namespace shared by all collections
        expire_seconds: Key expiration for the plain redis backend
        batch_size: Texts per embedding call
        debug: Log SQLite query plans

    Raises:
        ConfigError: If a redis backend is selected without a redis URL
    """

    def __init__(
        self,
        embedder: HasEmbed,
        model: str,
        collection: Optional[str] = None,
        embedding_length: int = DEFAULT_EMBEDDING_LENGTH,
        cache: Union[BackendType, str, CacheBackend] = BackendType.MEMORY,
        database_filename: Optional[str] = None,
        redis_url: Optional[str] = None,
        model_options: Optional[Dict[str, Any]] = None,
        namespace: str = DEFAULT_NAMESPACE,
        expire_seconds: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        debug: bool = False,
    ):
        self.embedder = embedder
        self.model = model
        self.model_options = model_options
        self.namespace = namespace
        self.batch_size = batch_size
        self.debug = debug
        self._collection = collection or DEFAULT_COLLECTION

        if isinstance(cache, CacheBackend):
            cache.prefix = self.prefix
            self.cache = cache
        else:
            self.cache = self._connect_cache(
                BackendType(cache),
                redis_url=redis_url,
                embedding_length=embedding_length,
                database_filename=database_filename or ":memory:",
                expire_seconds=expire_seconds,
            )

    @classmethod
    def from_config(cls, config: StoreConfig, embedder: HasEmbed) -> "Documents":
        """Create a store from a validated :class:`StoreConfig`."""
        return cls(
            embedder,
            model=config.model,
            collection=config.collection,
            embedding_length=config.embedding_length,
            cache=config.backend,
            database_filename=config.database_filename,
            redis_url=config.redis_url,
            model_options=config.model_options or None,
            namespace=config.namespace,
            expire_seconds=config.expire_seconds,
            batch_size=config.batch_size,
            debug=config.debug,
        )

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    @property
    def collection(self) -> str:
        return self._collection

    @collection.setter
    def collection(self, value: str) -> None:
        self._collection = value
        self.cache.prefix = self.prefix

    @property
    def prefix(self) -> str:
        return make_prefix(self.namespace, self._collection)

    def collections(self) -> list[str]:
        """The default collection followed by every stored collection name."""
        found = self.cache.collections(f"{self.namespace}-")
        found.discard(DEFAULT_COLLECTION)
        return [DEFAULT_COLLECTION] + sorted(found)

    # ------------------------------------------------------------------
    # Adding texts
    # ------------------------------------------------------------------

    def add(
        self,
        texts: Union[str, Iterable[Any]],
        batch_size: Optional[int] = None,
        source: Optional[str] = None,
        tags: TagsArg = None,
    ) -> "Documents":
        """Embed and store *texts* that are not stored yet.

        Args:
            texts: A string, or strings / readable objects
            batch_size: Texts per embedding call (default: ``self.batch_size``)
            source: Provenance of the texts; its basename is added as a tag
            tags: Tags attached to every added text

        Returns:
            self
        """
        texts = self._prepare_texts(texts)
        if not texts:
            return self
        tag_set = Tags(tags, source=source)
        if source:
            tag_set.add(re.sub(r"\?.*", "", os.path.basename(source)), source=source)
        tag_list = tag_set.to_list()

        batch_size = batch_size or self.batch_size
        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            embeddings = self._fetch_embeddings(batch, options=self.model_options)
            for text, embedding in zip(batch, embeddings):
                embedding = [float(x) for x in embedding]
                self.set(
                    text,
                    Record(
                        text=text,
                        embedding=embedding,
                        norm=norm(embedding),
                        source=source,
                        tags=tag_list,
                    ),
                )
            logger.debug("Embedded %d texts for %s", len(batch), self.prefix)
        logger.info("Added %d texts to collection %s", len(texts), self._collection)
        return self

    def _prepare_texts(self, texts: Union[str, Iterable[Any]]) -> list[str]:
        if isinstance(texts, str) or hasattr(texts, "read"):
            texts = [texts]
        prepared = [t.read() if hasattr(t, "read") else str(t) for t in texts]
        return [t for t in dict.fromkeys(prepared) if not self.exists(t)]

    def _fetch_embeddings(
        self,
        texts: list[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> list[list[float]]:
        embeddings = self.embedder.embed(model=self.model, input=texts, options=options)
        if len(embeddings) != len(texts):
            raise EmbedStoreError(
                "Embedding provider returned the wrong number of vectors",
                details={"model": self.model, "expected": len(texts), "actual": len(embeddings)},
            )
        return embeddings

    # ------------------------------------------------------------------
    # Point access by text
    # ------------------------------------------------------------------

    def get(self, text: str) -> Optional[Any]:
        return self.cache.get(text_key(text))

    def set(self, text: str, record: Union[Record, dict]) -> None:
        self.cache.set(text_key(text), record)

    def exists(self, text: str) -> bool:
        return self.cache.exists(text_key(text))

    def delete(self, text: str) -> bool:
        return self.cache.delete(text_key(text))

    def size(self) -> int:
        return self.cache.size()

    def clear(self, tags: TagsArg = None) -> "Documents":
        self.cache.clear(tags=tags)
        return self

    def tags(self) -> Tags:
        return self.cache.tags()

    __getitem__ = get
    __setitem__ = set

    def __contains__(self, text: object) -> bool:
        return isinstance(text, str) and self.exists(text)

    def __len__(self) -> int:
        return self.size()

    def __bool__(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def find(
        self,
        query: Union[str, Vector],
        tags: TagsArg = None,
        prompt: Optional[str] = None,
        max_records: Optional[int] = None,
    ) -> list[Record]:
        """Records most similar to *query*, best first.

        Args:
            query: Query text, or an already computed query vector
            tags: Only consider records sharing one of these tags
            prompt: ``%``-style template the query text is formatted into
                before embedding, e.g. ``"Represent this query: %s"``
            max_records: Maximum number of records returned
        """
        needle = self._convert_to_vector(query, prompt=prompt)
        return self.cache.find_records(needle, tags=tags, max_records=max_records)

    def find_where(
        self,
        query: Union[str, Vector],
        text_size: Optional[int] = None,
        text_count: Optional[int] = None,
        **opts: Any,
    ) -> list[Record]:
        """Leading results of :meth:`find` within a text budget.

        Args:
            text_size: Maximum total length of the returned texts
            text_count: Maximum number of returned texts
            **opts: Passed to :meth:`find`
        """
        if text_count is not None:
            opts["max_records"] = text_count
        result = []
        total_size = 0
        for record in self.find(query, **opts):
            total_size += len(record.text)
            if text_size is not None and total_size > text_size:
                break
            if text_count is not None and len(result) >= text_count:
                break
            result.append(record)
        return result

    def _convert_to_vector(self, query: Union[str, Vector], prompt: Optional[str] = None) -> Any:
        if isinstance(query, str):
            if prompt:
                query = prompt % query
            query = self._fetch_embeddings([query], options=self.model_options)[0]
        return self.cache.convert_to_vector(query)

    def _connect_cache(
        self,
        backend: BackendType,
        redis_url: Optional[str],
        embedding_length: int,
        database_filename: str,
        expire_seconds: Optional[int],
    ) -> CacheBackend:
        prefix = self.prefix
        if backend == BackendType.REDIS:
            try:
                cache = RedisCache(
                    prefix,
                    url=redis_url,
                    record_class=Record,
                    ex=expire_seconds,
                    namespace=self.namespace,
                )
                cache.size()
                return cache
            except redis.exceptions.ConnectionError as e:
                self._log_fallback(redis_url, e)
        elif backend == BackendType.REDIS_BACKED_MEMORY:
            try:
                return RedisBackedMemoryCache(
                    prefix,
                    url=redis_url,
                    record_class=Record,
                    namespace=self.namespace,
                )
            except redis.exceptions.ConnectionError as e:
                self._log_fallback(redis_url, e)
        elif backend == BackendType.SQLITE:
            return SQLiteCache(
                prefix,
                embedding_length=embedding_length,
                filename=database_filename,
                debug=self.debug,
            )
        return MemoryCache(prefix)

    @staticmethod
    def _log_fallback(redis_url: Optional[str], error: Exception) -> None:
        logger.warning(
            "Cannot connect to redis URL %r, falling back to MemoryCache: %s",
            redis_url,
            error,
        )

    def __repr__(self) -> str:
        return (
            f"Documents(model={self.model!r}, collection={self._collection!r}, "
            f"cache={self.cache.__class__.__name__})"
        )
