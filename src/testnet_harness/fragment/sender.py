"""Submission of transfer fragments through a node's REST API."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from testnet_harness import metrics
from testnet_harness.rest import FragmentsProcessingSummary, RestError
from testnet_harness.wire import Fragment

from .config import FRAGMENT_TIMEOUT
from .errors import CannotSendFragmentBatch, FragmentRejected
from .records import FragmentNode, MemPoolCheck
from .verifier import FragmentVerifier
from .wallet import Wallet

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FragmentSender:
    """Builds transfers from wallets and submits them to nodes."""

    verifier: FragmentVerifier = field(default_factory=FragmentVerifier)
    """Used by the round-trip helper to wait for each transfer."""

    def send_raw(self, fragment: Fragment, node: FragmentNode) -> MemPoolCheck:
        """Submit an already signed fragment."""
        fragment_id = node.send_fragment(fragment)
        metrics.fragments_submitted.inc()
        logger.info("Fragment %s sent to %s", fragment_id, node.alias)
        return MemPoolCheck(fragment_id=fragment_id, alias=node.alias)

    def send_fragment(
        self, sender: Wallet, receiver: Wallet, node: FragmentNode, amount: int
    ) -> MemPoolCheck:
        """
        Transfer ``amount`` from ``sender`` to ``receiver`` through ``node``.

        The sender's spending counter advances once the node acknowledges the
        fragment.
        """
        check = self.send_raw(sender.transfer_to(receiver, amount), node)
        sender.confirm_transaction()
        return check

    def send_transactions_round_trip(
        self,
        n: int,
        wallet_a: Wallet,
        wallet_b: Wallet,
        node: FragmentNode,
        amount: int,
        timeout: float = FRAGMENT_TIMEOUT,
        node_b: FragmentNode | None = None,
    ) -> list[MemPoolCheck]:
        """
        Send ``n`` transfers A to B interleaved with ``n`` transfers B to A.

        Each transfer must land in a block before the next one is sent.
        ``wallet_a`` submits through ``node``; ``wallet_b`` through ``node_b``
        when given, otherwise through ``node`` as well.

        Returns:
            The 2n submission tokens in sending order.
        """
        node_b = node if node_b is None else node_b
        checks: list[MemPoolCheck] = []

        for i in range(n):
            for source, target, via in ((wallet_a, wallet_b, node), (wallet_b, wallet_a, node_b)):
                check = self.send_fragment(source, target, via, amount)
                self.verifier.wait_and_verify_is_in_block(timeout, check, via)
                checks.append(check)
            logger.debug("Round trip %d/%d done", i + 1, n)

        return checks

    def send_batch_fragments(
        self, fragments: Sequence[Fragment], fail_fast: bool, node: FragmentNode
    ) -> FragmentsProcessingSummary:
        """
        Submit ``fragments`` in one request.

        With ``fail_fast`` the first rejection is raised as `FragmentRejected`;
        without it the complete summary is returned, rejections included.

        Raises:
            CannotSendFragmentBatch: If the request itself fails.
            FragmentRejected: If ``fail_fast`` is set and a fragment was refused.
        """
        try:
            summary = node.send_fragment_batch(fragments, fail_fast)
        except RestError as exc:
            raise CannotSendFragmentBatch(
                node.alias, str(exc), [f.id for f in fragments], node.log_tail()
            ) from exc

        metrics.fragments_submitted.inc(len(fragments))
        logger.info(
            "Batch of %d fragments sent to %s: %d accepted, %d rejected",
            len(fragments), node.alias, len(summary.accepted), len(summary.rejected),
        )

        if fail_fast and summary.rejected:
            first = summary.rejected[0]
            raise FragmentRejected(node.alias, first.id, first.reason, node.log_tail())
        return summary
