"""The persisted record type shared by all cache backends."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from embedstore.utils.tags import Tags

# Fields written to storage; ``similarity`` and ``key`` only exist on query results
PERSISTED_FIELDS = ("text", "embedding", "norm", "source", "tags")


@dataclass(eq=False)
class Record:
    """A text fragment with its embedding and metadata.

    Two records are equal iff their ``text`` is equal. ``tags`` is kept in
    normalized form (no leading ``#``, sorted, unique), the same form queries
    and tag filters compare against.
    """

    text: str = ""
    embedding: list[float] = field(default_factory=list)
    norm: float = 0.0
    source: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    similarity: Optional[float] = None
    key: Optional[str] = None

    def __post_init__(self) -> None:
        self.tags = Tags(self.tags).to_list()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from a mapping, ignoring keys outside the field set."""
        values = {name: data[name] for name in PERSISTED_FIELDS if data.get(name) is not None}
        if "embedding" in values:
            values["embedding"] = [float(x) for x in values["embedding"]]
        if "norm" in values:
            values["norm"] = float(values["norm"])
        if "tags" in values:
            values["tags"] = [str(t) for t in values["tags"]]
        return cls(**values)

    @classmethod
    def coerce(cls, value: Union["Record", Mapping[str, Any]]) -> "Record":
        if isinstance(value, Record):
            return value
        return cls.from_dict(value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "embedding": [float(x) for x in self.embedding],
            "norm": float(self.norm),
            "source": self.source,
            "tags": [str(t) for t in self.tags],
        }

    def tags_set(self) -> Tags:
        return Tags(self.tags, source=self.source)

    def with_match(self, key: str, similarity: Optional[float]) -> "Record":
        """Copy of this record annotated with a query result's key and score."""
        return dataclasses.replace(self, key=key, similarity=similarity)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self.text == other.text
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.text)

    def __str__(self) -> str:
        tags = self.tags_set().render(link=False)
        tags = f" {tags}" if tags else ""
        similarity = "n/a" if self.similarity is None else f"{self.similarity:.4f}"
        return f"<Record {self.text!r}{tags} {similarity}>"
