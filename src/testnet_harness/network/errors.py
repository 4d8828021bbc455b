"""Errors raised by the network controller."""

from __future__ import annotations

from testnet_harness.types import HarnessError


class NetworkError(HarnessError):
    """Base class for network composition errors."""


class NodeNotFound(NetworkError):
    """No node with this alias was declared or spawned."""

    def __init__(self, alias: str) -> None:
        self.alias = alias
        super().__init__(f"node '{alias}' not found")


class WalletNotFound(NetworkError):
    """No wallet with this alias was declared."""

    def __init__(self, alias: str) -> None:
        self.alias = alias
        super().__init__(f"wallet '{alias}' not found")


class TrustedPeerNotRunning(NetworkError):
    """A node was spawned before one of the peers it trusts."""

    def __init__(self, alias: str, peer: str) -> None:
        self.alias = alias
        self.peer = peer
        super().__init__(
            f"cannot spawn node '{alias}': trusted peer '{peer}' is not running"
        )


class NodeAlreadySpawned(NetworkError):
    """A node with this alias still has a live process."""

    def __init__(self, alias: str) -> None:
        self.alias = alias
        super().__init__(f"node '{alias}' is already spawned")
