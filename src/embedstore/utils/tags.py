"""Sorted, de-duplicated tag collections.

A :class:`Tag` is a normalized string (leading ``#`` removed, restricted to the
first capture group of a ``valid_tag`` pattern) plus an optional source
reference. :class:`Tags` keeps tags strictly sorted by value with no
duplicates; insertion uses binary search.

Example::

    tags = Tags(["#bar", "##foo"])
    tags.to_list()                 # ["bar", "foo"]
    tags.add("baz", source="https://example.com")
    str(tags)                      # "#bar #baz #foo" (with a hyperlink on #baz)
"""

from __future__ import annotations

import bisect
import os
import re
from functools import total_ordering
from typing import Iterable, Iterator, Optional, Pattern, Union

# First run of non-space characters after any leading "#"
DEFAULT_VALID_TAG = re.compile(r"\A#*(\S+)")

_URI_RE = re.compile(r"\A(https?|file)://")

# OSC 8 terminal hyperlink
_LINK_OPEN = "\033]8;;{uri}\033\\"
_LINK_CLOSE = "\033]8;;\033\\"


def source_uri(source: str) -> str:
    """Return *source* as a URI, resolving local paths to ``file://`` URIs."""
    if _URI_RE.match(source):
        return source
    return "file://" + os.path.abspath(os.path.expanduser(source))


def hyperlink(uri: str, text: str) -> str:
    """Wrap *text* in a terminal hyperlink escape sequence pointing at *uri*."""
    return _LINK_OPEN.format(uri=uri) + text + _LINK_CLOSE


@total_ordering
class Tag:
    """A normalized tag value with an optional provenance ``source``.

    Equality, hashing and ordering only consider ``value``; a Tag also compares
    equal to a plain string holding the same value.
    """

    __slots__ = ("value", "source")

    def __init__(
        self,
        tag: Union[str, "Tag"],
        source: Optional[str] = None,
        valid_tag: Optional[Pattern[str]] = None,
    ):
        self.value = self.normalize(str(tag), valid_tag)
        self.source = source

    @staticmethod
    def normalize(tag: str, valid_tag: Optional[Pattern[str]] = None) -> str:
        match = (valid_tag or DEFAULT_VALID_TAG).match(tag)
        if match is None:
            return ""
        return match.group(1).lstrip("#")

    def render(self, link: bool = True) -> str:
        """Format as ``#value``, hyperlinked to ``source`` when *link* is set."""
        text = "#" + self.value
        if link and self.source:
            return hyperlink(source_uri(self.source), text)
        return text

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Tag):
            return self.value == other.value
        if isinstance(other, str):
            return self.value == other
        return NotImplemented

    def __lt__(self, other: object) -> bool:
        if isinstance(other, Tag):
            return self.value < other.value
        if isinstance(other, str):
            return self.value < other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def __bool__(self) -> bool:
        return bool(self.value)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        if self.source:
            return f"Tag({self.value!r}, source={self.source!r})"
        return f"Tag({self.value!r})"


class Tags:
    """Strictly sorted, duplicate-free sequence of :class:`Tag`.

    Tags that normalize to the empty string are dropped. When the same value
    is added twice the first source wins.
    """

    def __init__(
        self,
        tags: Union[None, str, Tag, Iterable[Union[str, Tag]]] = None,
        source: Optional[str] = None,
        valid_tag: Optional[Pattern[str]] = None,
    ):
        self.valid_tag = valid_tag
        self._set: list[Tag] = []
        if tags is None:
            return
        if isinstance(tags, (str, Tag)):
            tags = [tags]
        for tag in tags:
            self.add(tag, source=source)

    def add(self, tag: Union[str, Tag], source: Optional[str] = None) -> "Tags":
        if not isinstance(tag, Tag):
            tag = Tag(tag, source=source, valid_tag=self.valid_tag)
        if not tag:
            return self
        index = bisect.bisect_left(self._set, tag)
        if index == len(self._set) or self._set[index] != tag:
            self._set.insert(index, tag)
        return self

    @property
    def size(self) -> int:
        return len(self._set)

    @property
    def empty(self) -> bool:
        return not self._set

    def clear(self) -> "Tags":
        self._set.clear()
        return self

    def to_list(self) -> list[str]:
        """Normalized tag values in sorted order."""
        return [tag.value for tag in self._set]

    def render(self, link: bool = True) -> str:
        return " ".join(tag.render(link=link) for tag in self._set)

    def __iter__(self) -> Iterator[Tag]:
        return iter(self._set)

    def __len__(self) -> int:
        return len(self._set)

    def __contains__(self, tag: object) -> bool:
        if isinstance(tag, str):
            tag = Tag(tag, valid_tag=self.valid_tag)
        index = bisect.bisect_left(self._set, tag)
        return index < len(self._set) and self._set[index] == tag

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Tags):
            return self.to_list() == other.to_list()
        return NotImplemented

    def __str__(self) -> str:
        return self.render(link=True)

    def __repr__(self) -> str:
        return f"Tags({self.to_list()!r})"
