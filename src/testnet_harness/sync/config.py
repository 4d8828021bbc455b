"""
Synchronization measurement constants.

Polling and reporting periods for the sync-time measurer.
"""

from __future__ import annotations

from typing import Final

SYNC_POLL_INTERVAL: Final[float] = 1.0
"""Seconds between two snapshots of the network."""

SECONDS_PER_NODE_HOP: Final[float] = 20.0
"""Budget per node and tolerated hop when no explicit cap is given."""

STANDARD_REPORT_INTERVAL: Final[float] = 20.0
"""Seconds between two progress reports in a standard measurement."""

LONG_REPORT_INTERVAL: Final[float] = 100.0
"""Seconds between two progress reports in a long measurement."""
