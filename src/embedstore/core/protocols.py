"""Protocol definitions for embedstore.

Protocols define the narrow interfaces of the collaborators embedstore
consumes but does not implement. Using @runtime_checkable allows isinstance()
checks.

Usage:
    from embedstore.core.protocols import HasEmbed

    def build(embedder: HasEmbed):
        if not isinstance(embedder, HasEmbed):
            raise TypeError("embedder must implement embed()")
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class HasEmbed(Protocol):
    """Protocol for embedding providers.

    Given a model identifier and a batch of strings, returns one fixed-length
    float vector per string, in input order. Errors must be raised, not
    swallowed.
    """

    def embed(
        self,
        model: str,
        input: List[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> List[List[float]]:
        """Embed a batch of texts."""
        ...
