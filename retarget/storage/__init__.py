"""
Storage subsystem exports.
"""

from .headers import HeaderStore

__all__ = [
    "HeaderStore",
]
