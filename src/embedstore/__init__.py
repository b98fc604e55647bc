"""embedstore: an embedding store for texts with pluggable record caches.

Key modules:
- documents: Collection-scoped store that embeds, stores and searches texts
- cache: Record caches (memory, redis, redis-backed memory, SQLite + sqlite-vec)
- config: Pydantic store configuration and YAML/JSON loading
- utils: Tag sets and vector helpers

Quick start:
    from embedstore import Documents

    documents = Documents(embedder, model="mxbai-embed-large", cache="sqlite")
    documents.add(["first text", "second text"], tags=["notes"])
    for record in documents.find("query", max_records=3):
        print(record.similarity, record.text)
"""

__version__ = "0.1.0"

from embedstore.cache import (
    CacheBackend,
    MemoryCache,
    Record,
    RedisBackedMemoryCache,
    RedisCache,
    SQLiteCache,
)
from embedstore.config import ConfigLoader, StoreConfig
from embedstore.core import (
    BackendType,
    ConfigError,
    DimensionMismatchError,
    EmbedStoreError,
    StorageError,
    configure_logging,
    get_logger,
)
from embedstore.documents import Documents
from embedstore.utils import Tag, Tags

__all__ = [
    # Store
    "Documents",
    # Caches
    "CacheBackend",
    "MemoryCache",
    "RedisCache",
    "RedisBackedMemoryCache",
    "SQLiteCache",
    "Record",
    # Config
    "BackendType",
    "ConfigLoader",
    "StoreConfig",
    # Tags
    "Tag",
    "Tags",
    # Errors
    "EmbedStoreError",
    "ConfigError",
    "DimensionMismatchError",
    "StorageError",
    # Logging
    "configure_logging",
    "get_logger",
]
