"""
Next-block difficulty validation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..config import Algorithm, NetworkParams
from .chainview import BlockHeader, ChainView, StoredHeader
from .difficulty import ConsensusViolation, Retarget, RetargetStatus, bits_to_double
from .epochs import select_algorithm
from .gravity import dark_gravity_wave, dark_gravity_wave3, kimoto_gravity_well
from .legacy import legacy_retarget, static_retarget

RetargetRule = Callable[[NetworkParams, StoredHeader, BlockHeader, ChainView], Retarget]

RULES: dict[Algorithm, RetargetRule] = {
    Algorithm.LEGACY: legacy_retarget,
    Algorithm.KIMOTO_GRAVITY_WELL: kimoto_gravity_well,
    Algorithm.DARK_GRAVITY_WAVE: dark_gravity_wave,
    Algorithm.DARK_GRAVITY_WAVE3: dark_gravity_wave3,
    Algorithm.STATIC: static_retarget,
}


class DifficultyEngine:
    """Derives and checks the target required of the block following ``prev``."""

    def __init__(self, params: NetworkParams):
        self.params = params
        self.log = logging.getLogger("retarget.engine")

    def next_target(self, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
        height = prev.height + 1
        algorithm = select_algorithm(self.params, height)
        self.log.debug("Height %s uses %s on %s", height, algorithm.value, self.params.name)
        return RULES[algorithm](self.params, prev, candidate, chain)

    def validate(self, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
        """Raise ConsensusViolation unless ``candidate`` claims the required target.

        A rule that cannot see enough history returns a gap; the claim is then
        accepted on trust so nodes started from a checkpoint can still sync.
        """

        result = self.next_target(prev, candidate, chain)
        if result.status is RetargetStatus.GAP:
            self.log.info(
                "Checkpoint gap at height %s; accepting claimed bits %08x on trust",
                result.height,
                candidate.bits,
            )
            return result
        if result.status is RetargetStatus.VIOLATION:
            raise ConsensusViolation(result.reason)

        limit = self.params.tolerance_max_height
        if limit is not None and result.height <= limit:
            computed = bits_to_double(result.bits)
            claimed = bits_to_double(candidate.bits)
            if abs(computed - claimed) > computed * self.params.tolerance_ratio:
                raise ConsensusViolation(self._mismatch(result.bits, candidate.bits))
            return result

        if result.bits != candidate.bits:
            raise ConsensusViolation(self._mismatch(result.bits, candidate.bits))
        return result

    @staticmethod
    def _mismatch(computed: int, claimed: int) -> str:
        return f"Network provided difficulty bits do not match what was calculated: {computed:08x} vs {claimed:08x}"


def validate_next_difficulty(
    params: NetworkParams,
    prev: StoredHeader,
    candidate: BlockHeader,
    chain: ChainView,
) -> Retarget:
    return DifficultyEngine(params).validate(prev, candidate, chain)
