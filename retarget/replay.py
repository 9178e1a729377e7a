"""
Replay difficulty validation over a stored header range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import NetworkParams
from .core.chainview import BlockHeader, StoredHeader
from .core.difficulty import DifficultyError
from .core.engine import DifficultyEngine
from .storage import HeaderStore

log = logging.getLogger("retarget.replay")

REPLAY_BATCH = 2000


@dataclass(slots=True)
class ReplayReport:
    start: int
    end: int
    checked: int = 0
    trusted: int = 0
    last_trusted: int | None = None
    failed_height: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed_height is None


def as_candidate(header: StoredHeader) -> BlockHeader:
    if header.prev_hash is None:
        raise ValueError(f"Header {header.hash} has no parent to validate against")
    return BlockHeader(hash=header.hash, prev_hash=header.prev_hash, timestamp=header.timestamp, bits=header.bits)


def replay_headers(
    params: NetworkParams,
    store: HeaderStore,
    start: int | None = None,
    end: int | None = None,
    *,
    batch_size: int = REPLAY_BATCH,
) -> ReplayReport:
    """Validate every stored header in ``[start, end]`` against its parent.

    Stops at the first rejected header. A header whose parent is not stored is
    reported as a failure, since the store cannot vouch for it.
    """

    lowest = store.get_min_height()
    highest = store.get_max_height()
    if lowest is None or highest is None:
        return ReplayReport(start=start or 0, end=end or 0)
    first = max(start if start is not None else lowest + 1, 1)
    last = min(end if end is not None else highest, highest)
    report = ReplayReport(start=first, end=last)
    engine = DifficultyEngine(params)

    for header in store.iter_headers_range(first, last, batch_size=batch_size):
        prev = store.get_header(header.prev_hash) if header.prev_hash else None
        if prev is None:
            report.failed_height = header.height
            report.error = f"parent {header.prev_hash} not stored"
            break
        try:
            result = engine.validate(prev, as_candidate(header), store)
        except DifficultyError as exc:
            log.warning("Rejected header %s at height %s: %s", header.hash, header.height, exc)
            report.failed_height = header.height
            report.error = str(exc)
            break
        report.checked += 1
        if result.is_gap:
            report.trusted += 1
            report.last_trusted = header.height
    log.info(
        "Replayed %s headers (%s..%s) on %s; trusted=%s failed=%s",
        report.checked,
        first,
        last,
        params.name,
        report.trusted,
        report.failed_height,
    )
    return report
