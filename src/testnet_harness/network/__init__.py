"""
Whole-network orchestration.

Builds a network from a topology, spawns its nodes in trust order and tears
it down, preserving node artifacts when a test fails.
"""

from .controller import NetworkBuilder, NetworkController
from .errors import (
    NetworkError,
    NodeAlreadySpawned,
    NodeNotFound,
    TrustedPeerNotRunning,
    WalletNotFound,
)
from .genesis import BlockchainSettings, KeySource, WalletTemplate, genesis_description
from .persist import persist_dir_on_failure
from .ports import PortAllocator, PortsExhausted

__all__ = [
    # Composition
    "NetworkBuilder",
    "NetworkController",
    # Genesis
    "BlockchainSettings",
    "KeySource",
    "WalletTemplate",
    "genesis_description",
    # Support
    "PortAllocator",
    "PortsExhausted",
    "persist_dir_on_failure",
    # Errors
    "NetworkError",
    "NodeAlreadySpawned",
    "NodeNotFound",
    "TrustedPeerNotRunning",
    "WalletNotFound",
]
