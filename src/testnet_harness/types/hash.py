"""Hash identifiers for blocks, headers and fragments."""

from __future__ import annotations

import hashlib
import re
from typing import Final

from pydantic import AfterValidator
from typing_extensions import Annotated

HASH_SIZE: Final = 32
"""Digest size in bytes for block, header and fragment identifiers."""

_HEX_HASH_RE: Final = re.compile(r"^[0-9a-f]{64}$")


def blake2b_256(data: bytes) -> str:
    """Hash ``data`` with BLAKE2b-256 and return the lowercase hex digest."""
    return hashlib.blake2b(data, digest_size=HASH_SIZE).hexdigest()


def _check_hex_hash(value: str) -> str:
    value = value.lower()
    if not _HEX_HASH_RE.match(value):
        raise ValueError(f"expected a 32-byte hex hash, got {value!r}")
    return value


HexHash = Annotated[str, AfterValidator(_check_hex_hash)]
"""
A 32-byte hash rendered as 64 lowercase hex characters.

Used for block ids, header ids, tips and fragment ids.
"""

ZERO_HASH: Final[str] = "00" * HASH_SIZE
"""The all-zero hash, used as the parent of the genesis block."""
