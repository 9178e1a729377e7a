"""
Height-based selection of the retarget algorithm.
"""

from __future__ import annotations

from bisect import bisect_right

from ..config import Algorithm, NetworkParams


def select_algorithm(params: NetworkParams, height: int) -> Algorithm:
    """Return the algorithm governing the block at ``height``."""

    starts = [start for start, _ in params.epochs]
    index = bisect_right(starts, height) - 1
    if index < 0:
        return params.epochs[0][1]
    return params.epochs[index][1]


def epoch_boundaries(params: NetworkParams) -> list[tuple[int, int | None, Algorithm]]:
    """List ``(first_height, last_height, algorithm)`` for every epoch; the last one is open ended."""

    boundaries: list[tuple[int, int | None, Algorithm]] = []
    for index, (start, algorithm) in enumerate(params.epochs):
        end = params.epochs[index + 1][0] - 1 if index + 1 < len(params.epochs) else None
        boundaries.append((start, end, algorithm))
    return boundaries
