"""Predicates over the finalized call log of a mock peer."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from testnet_harness.wire import MethodType

from .call_log import CallLogEntry


class MockExitCode(Enum):
    """Outcome of a mock session, usable as a process exit status."""

    SUCCESS = 0
    FAILURE = 1


@dataclass(frozen=True, slots=True)
class MockVerifier:
    """Answers questions about which calls the node made to the mock."""

    entries: tuple[CallLogEntry, ...]
    """Final call log, in arrival order."""

    def calls(self, method: MethodType) -> list[CallLogEntry]:
        return [entry for entry in self.entries if entry.method is method]

    def count(self, method: MethodType) -> int:
        return len(self.calls(method))

    def method_executed_at_least_once(self, method: MethodType) -> bool:
        return self.count(method) >= 1

    def method_never_executed(self, method: MethodType) -> bool:
        return self.count(method) == 0

    def method_executed_exactly(self, method: MethodType, times: int) -> bool:
        return self.count(method) == times

    def methods_executed_in_order(self, *methods: MethodType) -> bool:
        """
        Check that the methods were called in the given order.

        The methods must appear as a subsequence of the log; other calls may be
        interleaved between them.
        """
        remaining: Sequence[MethodType] = methods
        for entry in self.entries:
            if not remaining:
                break
            if entry.method is remaining[0]:
                remaining = remaining[1:]
        return not remaining
