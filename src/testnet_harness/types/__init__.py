"""Reusable type definitions for the test harness."""

from .base import NodeApiModel, StrictBaseModel
from .exceptions import HarnessError, LogCarryingError
from .hash import HASH_SIZE, ZERO_HASH, HexHash, blake2b_256

__all__ = [
    # Models
    "NodeApiModel",
    "StrictBaseModel",
    # Hashing
    "HASH_SIZE",
    "HexHash",
    "ZERO_HASH",
    "blake2b_256",
    # Exceptions
    "HarnessError",
    "LogCarryingError",
]
