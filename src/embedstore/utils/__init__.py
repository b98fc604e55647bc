"""Utility modules for embedstore."""

from embedstore.utils.tags import Tag, Tags
from embedstore.utils.vectors import cosine_similarity, norm

__all__ = [
    "Tag",
    "Tags",
    "cosine_similarity",
    "norm",
]
