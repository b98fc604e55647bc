"""Configuration schemas and loading for embedstore."""

from embedstore.config.loader import ConfigLoader
from embedstore.config.schemas import StoreConfig

__all__ = [
    "ConfigLoader",
    "StoreConfig",
]
