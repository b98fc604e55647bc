"""Configuration schemas for embedstore.

This module provides Pydantic models for validating and standardizing
store configurations.
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from embedstore.core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_COLLECTION,
    DEFAULT_EMBEDDING_LENGTH,
    DEFAULT_NAMESPACE,
    REDIS_URL_ENV,
    BackendType,
)


class StoreConfig(BaseModel):
    """Complete store configuration."""

    model_config = ConfigDict(extra="forbid", use_enum_values=False)

    backend: BackendType = Field(default=BackendType.MEMORY, description="Cache backend")
    namespace: str = Field(default=DEFAULT_NAMESPACE, description="Key namespace shared by collections")
    collection: str = Field(default=DEFAULT_COLLECTION, description="Active collection")
    embedding_length: int = Field(
        default=DEFAULT_EMBEDDING_LENGTH, gt=0, description="Length of every embedding"
    )
    database_filename: str = Field(default=":memory:", description="SQLite database file")
    redis_url: Optional[str] = Field(
        default_factory=lambda: os.environ.get(REDIS_URL_ENV),
        description="Redis URL (default: $REDIS_URL)",
    )
    expire_seconds: Optional[int] = Field(default=None, description="Redis key expiration")
    model: str = Field(default="", description="Embedding model identifier")
    model_options: Dict[str, Any] = Field(default_factory=dict, description="Embedding model options")
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0, description="Texts per embedding call")
    debug: bool = Field(default=False, description="Log SQLite query plans")

    @field_validator("namespace", "collection")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names become part of the key prefix and cannot be empty."""
        if not v:
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def validate_redis_url(self) -> "StoreConfig":
        """Ensure redis backends have a redis URL."""
        if BackendType.requires_redis(self.backend.value) and not self.redis_url:
            raise ValueError(f"{self.backend.value} backend requires redis_url")
        return self
