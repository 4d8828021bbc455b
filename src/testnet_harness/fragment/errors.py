"""Fragment submission and verification failures."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from testnet_harness.types import LogCarryingError

from .records import BlockPlacement


class FragmentError(LogCarryingError):
    """Base class for fragment failures on one node."""


class FragmentNotInMemPoolLogs(FragmentError):
    """The fragment never showed up in the node's fragment logs."""

    def __init__(self, alias: str, fragment_id: str, logs: Sequence[str]) -> None:
        self.alias = alias
        self.fragment_id = fragment_id
        super().__init__(
            f"fragment '{fragment_id}' not in the mempool of node '{alias}'", logs
        )


class FragmentIsPendingForTooLong(FragmentError):
    """The fragment stayed pending past the timeout."""

    def __init__(
        self, fragment_id: str, duration: float, alias: str, logs: Sequence[str]
    ) -> None:
        self.fragment_id = fragment_id
        self.duration = duration
        self.alias = alias
        super().__init__(
            f"fragment '{fragment_id}' is pending for {duration:.1f}s on node '{alias}'",
            logs,
        )


class FragmentRejected(FragmentError):
    """The node rejected the fragment."""

    def __init__(
        self, alias: str, fragment_id: str, reason: str, logs: Sequence[str] = ()
    ) -> None:
        self.alias = alias
        self.fragment_id = fragment_id
        self.reason = reason
        super().__init__(
            f"fragment '{fragment_id}' rejected by node '{alias}': {reason}", logs
        )


class FragmentConvergenceMismatch(FragmentError):
    """Nodes included the same fragment in different blocks."""

    def __init__(self, fragment_id: str, placements: Mapping[str, BlockPlacement]) -> None:
        self.fragment_id = fragment_id
        self.placements = dict(placements)
        detail = ", ".join(f"{alias}: {p}" for alias, p in self.placements.items())
        super().__init__(f"fragment '{fragment_id}' placed differently across nodes ({detail})")


class CannotSendFragmentBatch(FragmentError):
    """The batch could not be delivered to the node."""

    def __init__(
        self,
        alias: str,
        reason: str,
        fragment_ids: Sequence[str],
        logs: Sequence[str] = (),
    ) -> None:
        self.alias = alias
        self.reason = reason
        self.fragment_ids = list(fragment_ids)
        super().__init__(
            f"cannot send a batch of {len(self.fragment_ids)} fragments to node "
            f"'{alias}': {reason}",
            logs,
        )
