"""Errors raised while validating a topology."""

from __future__ import annotations

from testnet_harness.types import HarnessError


class TopologyError(HarnessError):
    """Base class for topology validation failures."""


class UnknownPeer(TopologyError):
    """
    Raised when a trust edge names a node that was never declared.

    Attributes:
        alias: The undeclared peer alias.
        trusted_by: The node whose trust edge referenced it.
    """

    def __init__(self, alias: str, trusted_by: str) -> None:
        self.alias = alias
        self.trusted_by = trusted_by
        super().__init__(f"node '{trusted_by}' trusts undeclared peer '{alias}'")


class CircularTrust(TopologyError):
    """
    Raised when trust edges form a cycle.

    Attributes:
        cycle: Aliases along the detected cycle, first alias repeated at the end.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Circular dependency in network topology: {' -> '.join(cycle)}")


class DuplicateAlias(TopologyError):
    """
    Raised when two descriptors share an alias.

    Attributes:
        alias: The repeated alias.
    """

    def __init__(self, alias: str) -> None:
        self.alias = alias
        super().__init__(f"node alias '{alias}' is declared more than once")
