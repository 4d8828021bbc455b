"""
Network synchronization time measurement.

Each round reads the height and tip of every node, groups the nodes by
height, and declares the network synchronized once the largest group reaches
the agreement threshold. Tips are kept on the readings for diagnosis. A
node that cannot be read in a round simply does not agree with anyone in
that round.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from testnet_harness import metrics
from testnet_harness.node import LogLine
from testnet_harness.types import HarnessError

from .config import SYNC_POLL_INTERVAL
from .errors import SyncErrorsInLogs, SyncTimeoutExceeded
from .params import MeasurementReportInterval, SyncWaitParams

logger = logging.getLogger(__name__)


class SyncNode(Protocol):
    """What the measurer needs from a live node."""

    @property
    def alias(self) -> str: ...

    def last_block_height(self) -> int | None: ...

    def tip(self) -> str: ...

    def error_lines(self) -> list[LogLine]: ...


@dataclass(frozen=True, slots=True)
class NodeReading:
    """One node's chain position in one round."""

    alias: str
    height: int | None = None
    tip: str | None = None
    error: str | None = None
    """Why the node could not be read, if it could not."""

    @classmethod
    def take(cls, node: SyncNode) -> NodeReading:
        try:
            return cls(alias=node.alias, height=node.last_block_height(), tip=node.tip())
        except HarnessError as exc:
            logger.debug("Cannot read chain position of %s: %s", node.alias, exc)
            return cls(alias=node.alias, error=exc.message)


@dataclass(frozen=True, slots=True)
class SyncSnapshot:
    """Chain positions of every node in one round."""

    readings: tuple[NodeReading, ...]
    elapsed: float
    """Seconds since the measurement started."""

    @classmethod
    def take(cls, nodes: Sequence[SyncNode], elapsed: float) -> SyncSnapshot:
        return cls(readings=tuple(NodeReading.take(node) for node in nodes), elapsed=elapsed)

    @property
    def majority(self) -> tuple[int | None, int]:
        """
        The height reported by the most nodes and how many report it.

        Ties go to the greater height. Returns ``(None, 0)`` when no node
        reported a height.
        """
        groups = Counter(r.height for r in self.readings if r.height is not None)
        if not groups:
            return None, 0
        height, count = max(groups.items(), key=lambda item: (item[1], item[0]))
        return height, count

    @property
    def agreeing(self) -> int:
        return self.majority[1]

    def __str__(self) -> str:
        parts = []
        for r in self.readings:
            if r.height is None:
                parts.append(f"{r.alias}=<{r.error or 'no blocks'}>")
            else:
                parts.append(f"{r.alias}={r.height}@{r.tip[:8] if r.tip else ''}")
        return f"[{', '.join(parts)}] after {self.elapsed:.1f}s"


@dataclass(slots=True)
class SyncTimeMeasurer:
    """Polls a set of nodes until enough of them agree on the chain height."""

    params: SyncWaitParams
    """Agreement threshold and cap."""

    interval: float = SYNC_POLL_INTERVAL
    """Seconds between two rounds."""

    report_interval: MeasurementReportInterval = MeasurementReportInterval.STANDARD
    """How often progress is logged."""

    last_snapshot: SyncSnapshot | None = None
    """Most recent round, kept for diagnosis."""

    def measure(self, nodes: Sequence[SyncNode]) -> float:
        """
        Block until the network is synchronized.

        Returns:
            Seconds from the start of the measurement to the start of the first
            round in which the threshold was reached, clamped to the cap.

        Raises:
            SyncTimeoutExceeded: If the cap elapses first.
        """
        cap = self.params.cap
        threshold = self.params.threshold
        started = time.monotonic()
        next_report = self.report_interval.seconds

        while True:
            elapsed = time.monotonic() - started
            snapshot = SyncSnapshot.take(nodes, elapsed)
            self.last_snapshot = snapshot

            if snapshot.agreeing >= threshold:
                logger.info(
                    "%d/%d nodes in sync after %.1fs", snapshot.agreeing, len(nodes), elapsed
                )
                return min(elapsed, cap)

            if elapsed >= cap:
                raise SyncTimeoutExceeded(cap, snapshot)

            if elapsed >= next_report:
                logger.info(
                    "Sync progress: %d/%d agree (need %d) %s",
                    snapshot.agreeing,
                    len(nodes),
                    threshold,
                    snapshot,
                )
                next_report += self.report_interval.seconds

            time.sleep(min(self.interval, cap - elapsed))


def measure_and_log_sync_time(
    nodes: Sequence[SyncNode],
    params: SyncWaitParams,
    info: str,
    interval: MeasurementReportInterval = MeasurementReportInterval.STANDARD,
) -> float:
    """
    Measure how long ``nodes`` take to synchronize and check their logs.

    Args:
        nodes: Nodes taking part in the measurement.
        params: Agreement threshold and cap.
        info: Label of the measurement in the log output.
        interval: How often progress is logged.

    Returns:
        The measured duration in seconds.

    Raises:
        SyncTimeoutExceeded: If the network does not converge in time.
        SyncErrorsInLogs: If a node logged ERROR records.
    """
    measurer = SyncTimeMeasurer(params=params, report_interval=interval)
    duration = measurer.measure(nodes)
    metrics.sync_time.observe(duration)
    logger.info("%s: synchronized in %.1fs %s", info, duration, measurer.last_snapshot)

    for node in nodes:
        errors = node.error_lines()
        if errors:
            raise SyncErrorsInLogs(node.alias, [line.raw for line in errors])
    return duration
