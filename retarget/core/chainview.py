"""
Header types and the read-only chain view consumed by the retarget rules.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol


class StoreIOError(Exception):
    """Raised by a chain view when the underlying storage fails."""


@dataclass(frozen=True, slots=True)
class StoredHeader:
    hash: str
    prev_hash: str | None
    height: int
    timestamp: int
    bits: int


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """Header of the block being validated; its height is implied by its parent."""

    hash: str
    prev_hash: str
    timestamp: int
    bits: int


class ChainView(Protocol):
    def get_header(self, block_hash: str) -> StoredHeader | None:
        """Return the stored header or None when it lies beyond the available history."""


class AncestorWalk:
    """Iterate a header and its ancestors, newest first.

    The walk stops at genesis (height 0) or after ``limit`` headers. The parent
    of the last yielded header is only fetched once the consumer asks for the
    next item, so breaking out early never touches the store. A missing parent
    ends the iteration and sets ``gap``.
    """

    def __init__(self, chain: ChainView, start: StoredHeader, limit: int) -> None:
        self.chain = chain
        self.start = start
        self.limit = limit
        self.gap = False

    def __iter__(self) -> Iterator[StoredHeader]:
        cursor = self.start
        seen = 0
        while cursor.height > 0:
            if self.limit > 0 and seen >= self.limit:
                return
            seen += 1
            yield cursor
            parent = self.chain.get_header(cursor.prev_hash) if cursor.prev_hash else None
            if parent is None:
                self.gap = True
                return
            cursor = parent
