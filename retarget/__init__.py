"""
Proof-of-work difficulty retargeting and validation.
"""

from .config import MAINNET, REGTEST, TESTNET, Algorithm, ConfigError, NetworkParams, params_for
from .core.chainview import BlockHeader, ChainView, StoredHeader, StoreIOError
from .core.difficulty import ChainStructureBroken, ConsensusViolation, DifficultyError, Retarget, RetargetStatus
from .core.engine import DifficultyEngine, validate_next_difficulty

__all__ = [
    "Algorithm",
    "BlockHeader",
    "ChainStructureBroken",
    "ChainView",
    "ConfigError",
    "ConsensusViolation",
    "DifficultyEngine",
    "DifficultyError",
    "MAINNET",
    "NetworkParams",
    "REGTEST",
    "Retarget",
    "RetargetStatus",
    "StoreIOError",
    "StoredHeader",
    "TESTNET",
    "params_for",
    "validate_next_difficulty",
]
