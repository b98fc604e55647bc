"""Core infrastructure for embedstore.

This module provides foundational components:
- Exceptions: Custom exception hierarchy
- Logging: Structured logging configuration
- Protocols: Type-checkable interfaces for collaborators
- Constants: Enums and constants
"""

from embedstore.core.constants import BackendType
from embedstore.core.exceptions import (
    ConfigError,
    ConfigurationError,
    DimensionMismatchError,
    EmbedStoreError,
    StorageError,
)
from embedstore.core.logging import configure_logging, get_logger
from embedstore.core.protocols import HasEmbed

__all__ = [
    # Exceptions
    "EmbedStoreError",
    "ConfigError",
    "ConfigurationError",  # Alias for ConfigError
    "DimensionMismatchError",
    "StorageError",
    # Logging
    "get_logger",
    "configure_logging",
    # Constants
    "BackendType",
    # Protocols
    "HasEmbed",
]
