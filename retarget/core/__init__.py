"""
Core consensus exports.
"""

from . import chainview, difficulty, engine, epochs, gravity, legacy

__all__ = [
    "chainview",
    "difficulty",
    "engine",
    "epochs",
    "gravity",
    "legacy",
]
