"""
Compact target encoding and shared retarget arithmetic.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass


class DifficultyError(Exception):
    pass


class ConsensusViolation(DifficultyError):
    """The claimed target differs from the one the rules require."""


class ChainStructureBroken(DifficultyError):
    """A mandatory ancestor is missing from the chain view."""


class RetargetStatus(enum.Enum):
    OK = "ok"
    GAP = "gap"
    VIOLATION = "violation"


@dataclass(frozen=True, slots=True)
class Retarget:
    """Outcome of one retarget rule for the block at ``height``.

    ``OK`` carries the required compact bits, ``GAP`` means the history needed
    by the rule is not available, ``VIOLATION`` carries the rule's rejection.
    """

    status: RetargetStatus
    height: int
    bits: int | None = None
    reason: str = ""

    @classmethod
    def ok(cls, height: int, bits: int) -> Retarget:
        return cls(RetargetStatus.OK, height, bits)

    @classmethod
    def gap(cls, height: int) -> Retarget:
        return cls(RetargetStatus.GAP, height, reason="ancestor history unavailable")

    @classmethod
    def violation(cls, height: int, reason: str) -> Retarget:
        return cls(RetargetStatus.VIOLATION, height, reason=reason)

    @property
    def is_gap(self) -> bool:
        return self.status is RetargetStatus.GAP


def compact_to_target(bits: int) -> int:
    bits &= 0xFFFFFFFF
    exponent = bits >> 24
    mantissa = bits & 0x007FFFFF
    if bits & 0x00800000 and mantissa:
        # Negative targets are never valid.
        return 0
    if exponent <= 3:
        target = mantissa >> (8 * (3 - exponent))
    else:
        target = mantissa << (8 * (exponent - 3))
    return target


def target_to_compact(target: int) -> int:
    if target < 0:
        return 0
    if target == 0:
        # Zero still occupies one byte of size.
        return 0x01000000
    size = (target.bit_length() + 7) // 8
    if size <= 3:
        mantissa = target << (8 * (3 - size))
    else:
        mantissa = target >> (8 * (size - 3))
    if mantissa & 0x800000:
        mantissa >>= 8
        size += 1
    return ((size << 24) | (mantissa & 0xFFFFFF)) & 0xFFFFFFFF


def bits_to_double(bits: int) -> float:
    """Difficulty-style float of a compact value, normalized to exponent 29."""

    shift = (bits >> 24) & 0xFF
    mantissa = bits & 0x00FFFFFF
    if mantissa == 0:
        return math.inf
    value = float(0x0000FFFF) / float(mantissa)
    while shift < 29:
        value *= 256.0
        shift += 1
    while shift > 29:
        value /= 256.0
        shift -= 1
    return value


def truncating_div(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero, like fixed-width and big-integer division."""

    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def successive_average(average: int, value: int, count: int) -> int:
    """One step of ``avg_n = (value - avg_{n-1}) / n + avg_{n-1}``."""

    if count == 1:
        return value
    return truncating_div(value - average, count) + average


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))
