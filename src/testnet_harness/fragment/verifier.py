"""
Polling a fragment until it lands in a block.

Each poll reads the node's fragment logs and classifies the fragment as
exactly one of:

- not found: the fragment never reached the node (a propagation problem);
- rejected: the node refused it (a validation problem), which is final;
- pending: the node holds it but no block includes it yet (a liveness problem);
- in a block: done.

Not found and pending are retried until the timeout, then reported as
distinct errors so a failing test says which of the three went wrong. A poll
that cannot read the logs keeps the previous classification.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from testnet_harness import metrics
from testnet_harness.rest import RestError

from .config import FRAGMENT_POLL_INTERVAL
from .errors import (
    FragmentConvergenceMismatch,
    FragmentIsPendingForTooLong,
    FragmentNotInMemPoolLogs,
    FragmentRejected,
)
from .records import (
    BlockPlacement,
    FragmentNode,
    FragmentOutcome,
    FragmentOutcomeKind,
    FragmentRecord,
    MemPoolCheck,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FragmentVerifier:
    """Blocking checks of fragment outcomes on live nodes."""

    interval: float = FRAGMENT_POLL_INTERVAL
    """Seconds between two reads of the fragment logs."""

    def fragment_status(self, check: MemPoolCheck, node: FragmentNode) -> FragmentOutcome:
        """Classify the fragment on ``node`` with a single read."""
        return FragmentOutcome.from_log(node.fragment_logs().get(check.fragment_id))

    def wait_and_verify_is_in_block(
        self,
        timeout: float,
        check: MemPoolCheck,
        node: FragmentNode,
        interval: float | None = None,
    ) -> BlockPlacement:
        """
        Poll ``node`` until the fragment is in a block.

        Args:
            timeout: Seconds before a missing or pending fragment is an error.
            check: Token returned when the fragment was submitted.
            node: Node whose fragment logs are read.
            interval: Seconds between polls; defaults to the verifier's interval.

        Returns:
            The block that includes the fragment.

        Raises:
            FragmentRejected: As soon as the node reports a rejection.
            FragmentNotInMemPoolLogs: If the fragment is still unknown at the timeout.
            FragmentIsPendingForTooLong: If the fragment is still pending at the timeout.
        """
        interval = self.interval if interval is None else interval
        started = time.monotonic()
        outcome = FragmentOutcome(FragmentOutcomeKind.NOT_FOUND)

        while True:
            try:
                outcome = self.fragment_status(check, node)
            except RestError as exc:
                logger.warning("Cannot read fragment logs of %s: %s", node.alias, exc)
            elapsed = time.monotonic() - started

            match outcome.kind:
                case FragmentOutcomeKind.IN_BLOCK:
                    assert outcome.placement is not None
                    metrics.fragment_outcomes.labels(outcome=outcome.kind.value).inc()
                    logger.debug("Fragment %s in block %s", check.fragment_id, outcome.placement)
                    return outcome.placement

                case FragmentOutcomeKind.REJECTED:
                    metrics.fragment_outcomes.labels(outcome=outcome.kind.value).inc()
                    logger.warning("Fragment %s rejected: %s", check.fragment_id, outcome.reason)
                    raise FragmentRejected(
                        node.alias, check.fragment_id, outcome.reason or "", node.log_tail()
                    )

                case FragmentOutcomeKind.NOT_FOUND if elapsed >= timeout:
                    metrics.fragment_outcomes.labels(outcome=outcome.kind.value).inc()
                    raise FragmentNotInMemPoolLogs(node.alias, check.fragment_id, node.log_tail())

                case FragmentOutcomeKind.PENDING if elapsed >= timeout:
                    metrics.fragment_outcomes.labels(outcome=outcome.kind.value).inc()
                    raise FragmentIsPendingForTooLong(
                        check.fragment_id, elapsed, node.alias, node.log_tail()
                    )

            logger.debug(
                "Fragment %s %s after %.1fs", check.fragment_id, outcome.kind.value, elapsed
            )
            time.sleep(min(interval, timeout - elapsed))

    def verify_converged(
        self,
        timeout: float,
        check: MemPoolCheck,
        nodes: Sequence[FragmentNode],
        interval: float | None = None,
    ) -> FragmentRecord:
        """
        Require every node in ``nodes`` to include the fragment in the same block.

        Nodes are checked one after another against a single deadline.

        Raises:
            FragmentConvergenceMismatch: If two nodes report different blocks.
            FragmentRejected, FragmentNotInMemPoolLogs, FragmentIsPendingForTooLong:
                If one node does not include the fragment.
        """
        deadline = time.monotonic() + timeout
        placements: dict[str, BlockPlacement] = {}

        for node in nodes:
            remaining = max(0.0, deadline - time.monotonic())
            placements[node.alias] = self.wait_and_verify_is_in_block(
                remaining, check, node, interval
            )

        if len(set(placements.values())) > 1:
            raise FragmentConvergenceMismatch(check.fragment_id, placements)

        logger.info("Fragment %s converged on %d nodes", check.fragment_id, len(placements))
        return FragmentRecord(
            fragment_id=check.fragment_id,
            submitted_to=check.alias,
            outcomes={
                alias: FragmentOutcome(FragmentOutcomeKind.IN_BLOCK, placement=placement)
                for alias, placement in placements.items()
            },
        )
