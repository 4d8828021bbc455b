"""Synchronization measurement failures."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from testnet_harness.types import HarnessError, LogCarryingError

if TYPE_CHECKING:
    from .measurer import SyncSnapshot


class SyncTimeoutExceeded(HarnessError):
    """
    The network did not converge before the cap.

    Attributes:
        timeout: The cap, in seconds.
        achieved_state: Last snapshot taken before giving up.
    """

    def __init__(self, timeout: float, achieved_state: SyncSnapshot) -> None:
        self.timeout = timeout
        self.achieved_state = achieved_state
        super().__init__(f"nodes not in sync after {timeout:.1f}s: {achieved_state}")


class SyncErrorsInLogs(LogCarryingError):
    """A node logged errors while the network was synchronizing."""

    def __init__(self, alias: str, lines: Sequence[str]) -> None:
        self.alias = alias
        super().__init__(f"node '{alias}' logged {len(lines)} error line(s)", lines)
