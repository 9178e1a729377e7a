"""
In-memory chains for difficulty tests.
"""

from __future__ import annotations

from collections.abc import Callable

from retarget.core.chainview import BlockHeader, StoredHeader, StoreIOError

GENESIS_TIME = 1_390_095_618
DEFAULT_BITS = 0x1E0FFFF0


def header_hash(height: int) -> str:
    return f"{height:064x}"


class MemoryChain:
    """Dict-backed chain view that counts lookups."""

    def __init__(self) -> None:
        self.headers: dict[str, StoredHeader] = {}
        self.lookups = 0

    def add(self, header: StoredHeader) -> None:
        self.headers[header.hash] = header

    def prune_below(self, height: int) -> None:
        self.headers = {h: hdr for h, hdr in self.headers.items() if hdr.height >= height}

    def get_header(self, block_hash: str) -> StoredHeader | None:
        self.lookups += 1
        return self.headers.get(block_hash)


class BrokenStore:
    def get_header(self, block_hash: str) -> StoredHeader | None:
        raise StoreIOError("disk read failed")


def build_chain(
    tip_height: int,
    *,
    start: int = 0,
    spacing: int = 150,
    bits: int = DEFAULT_BITS,
    bits_at: Callable[[int], int] | None = None,
    time_at: Callable[[int], int] | None = None,
) -> tuple[MemoryChain, list[StoredHeader]]:
    chain = MemoryChain()
    headers: list[StoredHeader] = []
    prev_hash = header_hash(start - 1) if start > 0 else None
    for height in range(start, tip_height + 1):
        header = StoredHeader(
            hash=header_hash(height),
            prev_hash=prev_hash,
            height=height,
            timestamp=time_at(height) if time_at else GENESIS_TIME + height * spacing,
            bits=bits_at(height) if bits_at else bits,
        )
        chain.add(header)
        headers.append(header)
        prev_hash = header.hash
    return chain, headers


def next_header(prev: StoredHeader, bits: int, *, spacing: int = 150) -> BlockHeader:
    return BlockHeader(
        hash=header_hash(prev.height + 1),
        prev_hash=prev.hash,
        timestamp=prev.timestamp + spacing,
        bits=bits,
    )
