"""Custom exceptions for embedstore.

All exceptions inherit from EmbedStoreError, making it easy to:
- Catch all embedstore-specific errors
- Distinguish from third-party errors (redis, sqlite3)
- Add context to error messages

Usage:
    try:
        cache.find_records(needle)
    except EmbedStoreError as e:
        logger.error("embedstore error: %s", e)
"""

from typing import Any, Dict, Optional


class EmbedStoreError(Exception):
    """Base exception for all embedstore errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional context
        cause: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with details."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        if self.cause:
            msg = f"{msg} [caused by: {type(self.cause).__name__}: {self.cause}]"
        return msg


class ConfigError(EmbedStoreError):
    """Configuration error.

    Raised when:
    - A required endpoint is missing (e.g. no Redis URL)
    - Invalid config value
    - Config file not found
    - Validation failed
    """

    pass


class DimensionMismatchError(EmbedStoreError):
    """Query vector length differs from the configured embedding length.

    Signals caller misuse; the query is never truncated or padded.
    """

    pass


class StorageError(EmbedStoreError):
    """Storage engine error.

    Raised when:
    - The vector index extension cannot be loaded
    """

    pass


# Aliases for backward compatibility
ConfigurationError = ConfigError
