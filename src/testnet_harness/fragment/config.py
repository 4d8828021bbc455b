"""Fragment tracking constants."""

from __future__ import annotations

from typing import Final

FRAGMENT_POLL_INTERVAL: Final[float] = 1.0
"""Seconds between two reads of a node's fragment logs."""

FRAGMENT_TIMEOUT: Final[float] = 60.0
"""Default seconds for a fragment to land in a block."""
