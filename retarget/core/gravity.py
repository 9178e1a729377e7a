"""
Continuous (every block) retarget rules: Kimoto Gravity Well and the two
Dark Gravity Wave generations.

Each rule folds a bounded walk over the ancestors of the previous block into
an accumulator. The integer recurrences differ between rules and each keeps
its own rounding, so they are deliberately not shared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import NetworkParams
from .chainview import AncestorWalk, BlockHeader, ChainView, StoredHeader
from .difficulty import Retarget, clamp, compact_to_target, successive_average, target_to_compact, truncating_div

log = logging.getLogger("retarget.gravity")

SECONDS_PER_DAY = 60 * 60 * 24

DGW_PAST_BLOCKS_MIN = 14
DGW_PAST_BLOCKS_MAX = 140
DGW_RECENT_WEIGHT = 0.7
DGW_WINDOW_WEIGHT = 0.3

DGW3_PAST_BLOCKS = 24


def _limit(params: NetworkParams, height: int, target: int) -> Retarget:
    if target > params.max_target:
        log.info("Difficulty hit proof of work limit: %x", target)
        target = params.max_target
    return Retarget.ok(height, target_to_compact(target))


def kgw_window(params: NetworkParams) -> tuple[int, int]:
    """Minimum and maximum number of blocks the gravity well looks back over."""

    past_seconds_min = SECONDS_PER_DAY // 40
    past_seconds_max = SECONDS_PER_DAY * 7
    return past_seconds_min // params.target_spacing, past_seconds_max // params.target_spacing


def event_horizon(mass: int) -> float:
    return 1 + (0.7084 * ((float(mass) / 28.2) ** -1.228))


@dataclass(slots=True)
class _KimotoState:
    mass: int = 0
    average: int = 0
    actual_seconds: int = 0
    target_seconds: int = 0
    ratio: float = 1.0


def kimoto_gravity_well(params: NetworkParams, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
    height = prev.height + 1
    blocks_min, blocks_max = kgw_window(params)
    if prev.height == 0 or prev.height < blocks_min:
        return Retarget.ok(height, target_to_compact(params.max_target))

    state = _KimotoState()
    walk = AncestorWalk(chain, prev, blocks_max)
    for reading in walk:
        state.mass += 1
        state.average = successive_average(state.average, compact_to_target(reading.bits), state.mass)

        state.actual_seconds = prev.timestamp - reading.timestamp
        state.target_seconds = params.target_spacing * state.mass
        state.ratio = 1.0
        floor = 5 if reading.height > params.kgw_time_floor_height else 0
        if state.actual_seconds < floor:
            state.actual_seconds = floor
        if state.actual_seconds != 0 and state.target_seconds != 0:
            state.ratio = float(state.target_seconds) / state.actual_seconds

        horizon_fast = event_horizon(state.mass)
        horizon_slow = 1 / horizon_fast
        if state.mass >= blocks_min and (state.ratio <= horizon_slow or state.ratio >= horizon_fast):
            break
    if walk.gap:
        return Retarget.gap(height)

    new_target = state.average
    if state.actual_seconds != 0 and state.target_seconds != 0:
        new_target = new_target * state.actual_seconds // state.target_seconds
    return _limit(params, height, new_target)


@dataclass(slots=True)
class _DarkGravityState:
    count: int = 0
    average: int = 0
    last_time: int = 0
    time_count: int = 0
    time_average: int = 0
    time_sum: int = 0
    time_sum_count: int = 0

    def push(self, header: StoredHeader) -> None:
        self.count += 1
        if self.count <= DGW_PAST_BLOCKS_MIN:
            self.average = successive_average(self.average, compact_to_target(header.bits), self.count)
        if self.last_time > 0:
            diff = self.last_time - header.timestamp
            # Up to PastBlocksMin + 1 gaps enter the smoothed average.
            if self.time_count <= DGW_PAST_BLOCKS_MIN:
                self.time_count += 1
                if self.time_count == 1:
                    self.time_average = diff
                else:
                    self.time_average = truncating_div(diff - self.time_average, self.time_count) + self.time_average
            self.time_sum_count += 1
            self.time_sum += diff
        self.last_time = header.timestamp


def dark_gravity_wave(params: NetworkParams, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
    height = prev.height + 1
    if prev.height == 0 or prev.height < DGW_PAST_BLOCKS_MIN:
        return Retarget.ok(height, target_to_compact(params.max_target))

    state = _DarkGravityState()
    walk = AncestorWalk(chain, prev, DGW_PAST_BLOCKS_MAX)
    for reading in walk:
        state.push(reading)
    if walk.gap:
        return Retarget.gap(height)

    new_target = state.average
    if state.time_count != 0 and state.time_sum_count != 0:
        smart_average = (float(state.time_average) * DGW_RECENT_WEIGHT) + (
            (float(state.time_sum) / float(state.time_sum_count)) * DGW_WINDOW_WEIGHT
        )
        if smart_average < 1:
            smart_average = 1.0
        shift = params.target_spacing / smart_average

        target_timespan = float(state.count) * float(params.target_spacing)
        actual_timespan = target_timespan / shift
        if actual_timespan < target_timespan / 3:
            actual_timespan = target_timespan / 3
        if actual_timespan > target_timespan * 3:
            actual_timespan = target_timespan * 3

        new_target = new_target * int(actual_timespan) // int(target_timespan)
    return _limit(params, height, new_target)


@dataclass(slots=True)
class _DarkGravity3State:
    count: int = 0
    average: int = 0
    last_time: int = 0
    actual_timespan: int = 0

    def push(self, header: StoredHeader) -> None:
        self.count += 1
        target = compact_to_target(header.bits)
        if self.count == 1:
            self.average = target
        else:
            self.average = (self.average * self.count + target) // (self.count + 1)
        if self.last_time > 0:
            self.actual_timespan += self.last_time - header.timestamp
        self.last_time = header.timestamp


def dark_gravity_wave3(params: NetworkParams, prev: StoredHeader, candidate: BlockHeader, chain: ChainView) -> Retarget:
    height = prev.height + 1
    if prev.height == 0 or prev.height < DGW3_PAST_BLOCKS:
        return Retarget.ok(height, target_to_compact(params.max_target))

    state = _DarkGravity3State()
    walk = AncestorWalk(chain, prev, DGW3_PAST_BLOCKS)
    for reading in walk:
        state.push(reading)
    if walk.gap:
        return Retarget.gap(height)

    target_timespan = state.count * params.target_spacing
    actual_timespan = clamp(state.actual_timespan, target_timespan // 3, target_timespan * 3)
    return _limit(params, height, state.average * actual_timespan // target_timespan)
