"""
Genesis description shared by every node of a test network.

Written once per network as YAML::

    blockchain_configuration:
      block0_date: 1700000000
      block0_consensus: genesis_praos
      slot_duration: 2
      slots_per_epoch: 60
      consensus_leader_ids: [A, B]
    initial:
      - fund:
          - address: ...
            value: 1000000

The node under test owns the actual block0 construction from this
description.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Final

import yaml
from pydantic import field_validator

from testnet_harness.fragment import Signer, Wallet
from testnet_harness.topology import Topology
from testnet_harness.types import StrictBaseModel
from testnet_harness.wire import ProtocolVersion

GENESIS_FILE: Final[str] = "genesis.yaml"
"""Name of the genesis description inside the network's working root."""

KeySource = Callable[[str], tuple[str, Signer]]
"""Returns the address and signer for a wallet alias."""

_CONSENSUS_NAMES: Final[dict[ProtocolVersion, str]] = {
    ProtocolVersion.BFT: "bft",
    ProtocolVersion.GENESIS_PRAOS: "genesis_praos",
}


class BlockchainSettings(StrictBaseModel):
    """Chain parameters of a test network."""

    consensus: ProtocolVersion = ProtocolVersion.GENESIS_PRAOS
    slot_duration: int = 2
    """Seconds per slot."""

    slots_per_epoch: int = 60
    block0_date: int | None = None
    """Unix time of the genesis; the build time when unset."""

    @field_validator("slot_duration", "slots_per_epoch")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"must be positive, got {value}")
        return value


class WalletTemplate(StrictBaseModel):
    """A wallet funded in the genesis."""

    alias: str
    value: int

    @field_validator("value")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"initial funds must not be negative, got {value}")
        return value

    def create(self, keys: KeySource) -> Wallet:
        address, signer = keys(self.alias)
        return Wallet(alias=self.alias, address=address, value=self.value, signer=signer)


def genesis_description(
    settings: BlockchainSettings, topology: Topology, wallets: Iterable[Wallet]
) -> dict[str, Any]:
    """Build the genesis description document."""
    leaders = [alias for alias in topology.spawn_order if topology[alias].is_leader]
    return {
        "blockchain_configuration": {
            "block0_date": settings.block0_date or int(time.time()),
            "block0_consensus": _CONSENSUS_NAMES[settings.consensus],
            "slot_duration": settings.slot_duration,
            "slots_per_epoch": settings.slots_per_epoch,
            "consensus_leader_ids": leaders,
        },
        "initial": [
            {"fund": [{"address": wallet.address, "value": wallet.value} for wallet in wallets]}
        ],
    }


def write_genesis(
    directory: Path,
    settings: BlockchainSettings,
    topology: Topology,
    wallets: Iterable[Wallet],
) -> Path:
    """Write the genesis description into ``directory`` and return its path."""
    path = directory / GENESIS_FILE
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(genesis_description(settings, topology, wallets), f, sort_keys=False)
    return path
