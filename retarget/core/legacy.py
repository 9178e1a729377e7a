"""
Fixed-interval retarget rules: the legacy schedule, its testnet minimum
difficulty exception, and the non-retargeting regtest rule.
"""

from __future__ import annotations

import logging
import time

from ..config import NetworkParams
from .chainview import BlockHeader, ChainView, StoredHeader
from .difficulty import ChainStructureBroken, Retarget, clamp, compact_to_target, target_to_compact

log = logging.getLogger("retarget.legacy")

SLOW_TRAVERSAL_MS = 50


def legacy_retarget(params: NetworkParams, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
    height = prev.height + 1
    if height % params.interval != 0:
        if params.allow_min_difficulty_blocks:
            return testnet_retarget(params, prev, candidate, chain)
        if candidate.bits != prev.bits:
            return Retarget.violation(
                height,
                f"Unexpected change in difficulty at height {prev.height}: "
                f"{candidate.bits:x} vs {prev.bits:x}",
            )
        return Retarget.ok(height, candidate.bits)

    started = time.monotonic()
    steps = params.interval - 1 if height == params.interval else params.interval
    cursor: StoredHeader | None = prev
    for _ in range(steps):
        if cursor is None or cursor.prev_hash is None:
            cursor = None
            break
        cursor = chain.get_header(cursor.prev_hash)
    if cursor is None:
        raise ChainStructureBroken(
            "Difficulty transition point but we did not find a way back to the genesis block"
        )
    elapsed_ms = (time.monotonic() - started) * 1000
    if elapsed_ms > SLOW_TRAVERSAL_MS:
        log.info("Difficulty transition traversal took %dmsec", elapsed_ms)

    timespan = clamp(
        prev.timestamp - cursor.timestamp,
        params.target_timespan // 4,
        params.target_timespan * 4,
    )
    new_target = compact_to_target(prev.bits) * timespan // params.target_timespan
    if new_target > params.max_target:
        log.info("Difficulty hit proof of work limit: %x", new_target)
        new_target = params.max_target

    # The claimed bits carry less precision than the computed target; drop the same bytes.
    accuracy_bytes = (candidate.bits >> 24) - 3
    if accuracy_bytes >= 0:
        mask = 0xFFFFFF << (accuracy_bytes * 8)
    else:
        mask = 0xFFFFFF >> (-accuracy_bytes * 8)
    return Retarget.ok(height, target_to_compact(new_target & mask))


def testnet_retarget(params: NetworkParams, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
    height = prev.height + 1
    claimed = compact_to_target(candidate.bits)
    delta = candidate.timestamp - prev.timestamp
    if delta >= 0 and delta > params.target_spacing * 2:
        if claimed == params.max_target:
            return Retarget.ok(height, candidate.bits)
        return Retarget.violation(height, "Unexpected change in difficulty")

    # Walk back past minimum difficulty blocks to the last real target.
    cursor = prev
    while (
        cursor.height > 0
        and cursor.height % params.interval != 0
        and compact_to_target(cursor.bits) == params.max_target
    ):
        parent = chain.get_header(cursor.prev_hash) if cursor.prev_hash else None
        if parent is None:
            raise ChainStructureBroken(f"Missing ancestor of {cursor.hash} at height {cursor.height}")
        cursor = parent
    if compact_to_target(cursor.bits) != claimed:
        return Retarget.violation(
            height,
            f"Testnet block transition that is not allowed: {cursor.bits:x} vs {candidate.bits:x}",
        )
    return Retarget.ok(height, target_to_compact(claimed))


def static_retarget(params: NetworkParams, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
    return Retarget.ok(prev.height + 1, prev.bits)
