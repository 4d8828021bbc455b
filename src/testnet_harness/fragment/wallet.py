"""Test accounts that build and sign transfer fragments."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from testnet_harness.rest import AccountState
from testnet_harness.wire import Fragment

logger = logging.getLogger(__name__)

Signer = Callable[[bytes], str]
"""Signs a payload and returns the hex-encoded signature."""


class AccountSource(Protocol):
    """Anything that can report an account's on-chain state."""

    def account_state(self, address: str) -> AccountState: ...


@dataclass(slots=True)
class Wallet:
    """
    An account controlled by the test.

    Key material stays with the signer; the wallet only tracks the address,
    the expected balance and the spending counter.
    """

    alias: str
    """Name used by tests to refer to the wallet."""

    address: str
    """Account address on the chain."""

    value: int
    """Initial funds, as declared in the genesis."""

    signer: Signer = field(repr=False)
    """Signs fragment payloads on behalf of the account."""

    counter: int = 0
    """Spending counter expected for the next transfer."""

    def transfer_to(self, receiver: Wallet | str, amount: int) -> Fragment:
        """Build a signed transfer of ``amount`` to ``receiver``."""
        address = receiver.address if isinstance(receiver, Wallet) else receiver
        unsigned = Fragment(
            sender=self.address, receiver=address, value=amount, counter=self.counter
        )
        return unsigned.model_copy(update={"signature": self.signer(unsigned.signing_payload())})

    def confirm_transaction(self) -> None:
        """Advance the spending counter after an accepted submission."""
        self.counter += 1

    def sync_with(self, node: AccountSource) -> AccountState:
        """Reset the spending counter to the value reported by ``node``."""
        state = node.account_state(self.address)
        if state.counter != self.counter:
            logger.debug(
                "Wallet %s counter %d -> %d from node", self.alias, self.counter, state.counter
            )
        self.counter = state.counter
        return state
