"""Constants and enums for embedstore.

Centralizes all magic strings and constants used throughout the codebase.
"""

from enum import Enum
from typing import List

# Key layout: "<namespace>-<collection>-<sha256(text)>"
DEFAULT_NAMESPACE = "Documents"
DEFAULT_COLLECTION = "default"

DEFAULT_EMBEDDING_LENGTH = 1_024

# Upper bound on the k of a native nearest-neighbor query
MAX_KNN_RECORDS = 4_096

DEFAULT_BATCH_SIZE = 10

# Number of keys deleted per DEL round-trip while scanning redis
REDIS_DELETE_BATCH = 500

REDIS_URL_ENV = "REDIS_URL"


class BackendType(str, Enum):
    """Cache backends supported by embedstore."""

    MEMORY = "memory"
    REDIS = "redis"
    REDIS_BACKED_MEMORY = "redis_backed_memory"
    SQLITE = "sqlite"

    @classmethod
    def redis_types(cls) -> List["BackendType"]:
        """Get backend types that need a redis server."""
        return [cls.REDIS, cls.REDIS_BACKED_MEMORY]

    @classmethod
    def requires_redis(cls, backend: str) -> bool:
        """Check if backend type requires a redis URL."""
        return backend in [t.value for t in cls.redis_types()]
