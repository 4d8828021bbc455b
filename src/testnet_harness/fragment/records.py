"""Submission tokens and per-node fragment outcomes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from testnet_harness.rest import AccountState, FragmentLog, FragmentsProcessingSummary
from testnet_harness.wire import Fragment


class FragmentNode(Protocol):
    """What fragment submission and tracking need from a live node."""

    @property
    def alias(self) -> str: ...

    def send_fragment(self, fragment: Fragment) -> str: ...

    def send_fragment_batch(
        self, fragments: Sequence[Fragment], fail_fast: bool
    ) -> FragmentsProcessingSummary: ...

    def fragment_logs(self) -> dict[str, FragmentLog]: ...

    def account_state(self, address: str) -> AccountState: ...

    def log_tail(self, n: int = ...) -> list[str]: ...


@dataclass(frozen=True, slots=True)
class MemPoolCheck:
    """Token returned on submission, used to track the fragment afterwards."""

    fragment_id: str
    """Identifier acknowledged by the node."""

    alias: str
    """Node the fragment was submitted to."""


@dataclass(frozen=True, slots=True)
class BlockPlacement:
    """Where a fragment was included."""

    epoch: int
    slot: int
    block_hash: str

    def __str__(self) -> str:
        return f"{self.epoch}.{self.slot}@{self.block_hash[:16]}"


class FragmentOutcomeKind(Enum):
    """Classification of a fragment on one node."""

    NOT_FOUND = "not_found"
    PENDING = "pending"
    REJECTED = "rejected"
    IN_BLOCK = "in_block"


@dataclass(frozen=True, slots=True)
class FragmentOutcome:
    """The fragment as one node sees it during one poll."""

    kind: FragmentOutcomeKind
    reason: str | None = None
    placement: BlockPlacement | None = None

    @classmethod
    def from_log(cls, log: FragmentLog | None) -> FragmentOutcome:
        """Classify a fragment log entry; a missing entry is NOT_FOUND."""
        if log is None:
            return cls(FragmentOutcomeKind.NOT_FOUND)

        status = log.status
        if status.is_rejected:
            return cls(FragmentOutcomeKind.REJECTED, reason=status.reason)
        if status.is_in_a_block:
            assert status.epoch is not None and status.slot is not None
            assert status.block is not None
            placement = BlockPlacement(
                epoch=status.epoch, slot=status.slot, block_hash=status.block
            )
            return cls(FragmentOutcomeKind.IN_BLOCK, placement=placement)
        return cls(FragmentOutcomeKind.PENDING)


@dataclass(frozen=True, slots=True)
class FragmentRecord:
    """Outcome of one fragment across every node it was checked on."""

    fragment_id: str
    submitted_to: str
    outcomes: Mapping[str, FragmentOutcome]

    @property
    def placement(self) -> BlockPlacement | None:
        """The common placement when every node reports the same block, else None."""
        placements = {outcome.placement for outcome in self.outcomes.values()}
        if len(placements) != 1:
            return None
        return next(iter(placements))
