"""Compilation cache for Quire.

Every compiled fragment is stored under the *compilation-context chain* that
produced it: the page's output file first, then the layout, then each nested
include (optionally with the data it was included with). A chain is turned into
a single string key, so two chains are the same entry exactly when their
serialized forms are equal.

Key classes:
- DataLink: A chain link for "this file rendered with this extra data".
- CacheStore: The session-wide map from serialized chains to compiled values.

Key functions:
- chain_key: Serialize a chain to its cache key.
- parse_chain_key: Turn a cache key back into the chain it came from.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import CacheKeyError

# Separates links of a chain.
LINK_SEPARATOR = "\x1f"
# Wraps a link that carries data.
DATA_MARK = "\x1e"
# Separates the file of a data link from its JSON payload.
DATA_SEPARATOR = "\x1d"

_RESERVED = (LINK_SEPARATOR, DATA_MARK, DATA_SEPARATOR)


@dataclass(frozen=True)
class DataLink:
    """A chain link for a file rendered with extra context data.

    Attributes:
        file: Path of the rendered file.
        data: JSON-serializable data the file was rendered with.
    """

    file: str
    data: Any = field(default_factory=dict)


ChainLink = Union[str, DataLink]
Chain = Sequence[ChainLink]


def _check_text(text: str) -> str:
    for mark in _RESERVED:
        if mark in text:
            raise CacheKeyError(f"Chain link {text!r} contains a reserved delimiter")
    return text


def serialize_link(link: ChainLink | Mapping[str, Any]) -> str:
    """Serialize one chain link.

    Bare strings serialize to themselves. Data links serialize their file and
    their JSON-encoded data jointly, with sorted keys so equal data always
    yields an equal key. Mappings with ``file`` and ``data`` keys are accepted
    as data links.

    Raises:
        CacheKeyError: If the link contains a reserved delimiter, has an
            unsupported type, or carries data that cannot be JSON-encoded.
    """
    if isinstance(link, str):
        return _check_text(link)
    if isinstance(link, DataLink):
        file, data = link.file, link.data
    elif isinstance(link, Mapping) and "file" in link:
        file, data = link["file"], link.get("data", {})
    else:
        raise CacheKeyError(f"Unsupported chain link: {link!r}")
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise CacheKeyError(f"Data of the {file!r} link is not JSON-serializable") from exc
    # json.dumps escapes control characters, so the payload never holds a delimiter.
    return f"{DATA_MARK}{_check_text(str(file))}{DATA_SEPARATOR}{payload}{DATA_MARK}"


def chain_key(chain: Chain) -> str:
    """Serialize a compilation-context chain to its cache key.

    Args:
        chain: Non-empty sequence of links, outermost first.

    Returns:
        The serialized key.

    Raises:
        CacheKeyError: If ``chain`` is not a non-empty sequence of valid links.
    """
    if isinstance(chain, (str, bytes, Mapping, DataLink)) or not isinstance(
        chain, Sequence
    ):
        raise CacheKeyError(f"A chain must be a sequence of links, got {chain!r}")
    if not chain:
        raise CacheKeyError("A chain must contain at least one link")
    return LINK_SEPARATOR.join(serialize_link(link) for link in chain)


def parse_chain_key(key: str) -> list[ChainLink]:
    """Turn a cache key back into its chain.

    String links stay strings; data links are rebuilt as ``DataLink`` with the
    data JSON-decoded.
    """
    chain: list[ChainLink] = []
    for part in key.split(LINK_SEPARATOR):
        if len(part) >= 2 and part.startswith(DATA_MARK) and part.endswith(DATA_MARK):
            file, payload = part[1:-1].split(DATA_SEPARATOR, 1)
            chain.append(DataLink(file, json.loads(payload)))
        else:
            chain.append(part)
    return chain


def link_file(link: ChainLink) -> str:
    """Return the file path a link refers to."""
    return link.file if isinstance(link, DataLink) else link


def matches_tail(link: ChainLink | Mapping[str, Any]) -> Callable[[Chain], bool]:
    """Build a predicate that is true for chains whose last link is ``link``.

    This finds "the entry that is directly this file" as opposed to entries in
    which the file only appears as an ancestor. A bare path also matches a
    trailing data link for the same file, whatever data it was included with.

    Args:
        link: The link to compare the tail with.

    Returns:
        A predicate over chains.
    """
    expected = serialize_link(link)

    def predicate(chain: Chain) -> bool:
        if not chain:
            return False
        tail = chain[-1]
        if serialize_link(tail) == expected:
            return True
        return isinstance(link, str) and isinstance(tail, DataLink) and tail.file == link

    return predicate


class CacheStore:
    """Session-wide store of compiled strings keyed by compilation-context chains.

    A store is created once per build or development session and handed to
    every component that reads or writes compiled artifacts. Operations are
    synchronous, so concurrent page compilations on one event loop never
    interleave inside a single get or set.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def has(self, chain: Chain) -> bool:
        """Check whether a value is stored for ``chain``.

        A stored None counts: the front matter of a page without any is cached
        as None, and ``has`` is what tells it apart from a miss.
        """
        return chain_key(chain) in self._entries

    def get(self, chain: Chain) -> Any:
        """Return the value stored for ``chain``, or None if there is none."""
        return self._entries.get(chain_key(chain))

    def set(self, chain: Chain, value: Any) -> None:
        """Store ``value`` for ``chain``, replacing any previous value.

        Raises:
            CacheKeyError: If ``chain`` cannot be serialized.
        """
        self._entries[chain_key(chain)] = value

    def find_by_parts(
        self, parts: ChainLink | Mapping[str, Any] | Sequence[ChainLink]
    ) -> list[list[ChainLink]]:
        """Find every stored chain that contains all the given parts.

        A bare-string part matches when it occurs anywhere in the serialized
        chain, which finds a file even when it was consumed as an include
        several levels deep. A data-link part matches only its exact
        serialized form, so the same file included with other data is not
        returned.

        Args:
            parts: One link or a sequence of links.

        Returns:
            Matching chains in insertion order.
        """
        if isinstance(parts, (str, DataLink, Mapping)):
            parts = [parts]
        needles = [serialize_link(part) for part in parts]
        return [
            parse_chain_key(key)
            for key in self._entries
            if all(needle in key for needle in needles)
        ]

    def remove(self, chain: Chain) -> None:
        """Remove the entry for ``chain`` and every entry for one of its prefixes.

        Removing ``[a, b, c]`` also removes ``[a]`` and ``[a, b]``: the prefixes
        are the ancestor contexts (page, layout, include) that were built on
        top of the removed artifact.
        """
        key = chain_key(chain)
        for length in range(1, len(chain)):
            self._entries.pop(chain_key(chain[:length]), None)
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry, including the page list."""
        self._entries.clear()

    def chains(self) -> Iterator[list[ChainLink]]:
        """Iterate over every stored chain."""
        for key in list(self._entries):
            yield parse_chain_key(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"CacheStore({len(self._entries)} entries)"
