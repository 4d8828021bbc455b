"""Node declarations used to build a test network topology."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import field_validator

from testnet_harness.types import StrictBaseModel


class LeadershipMode(Enum):
    """Whether a node produces blocks or only relays them."""

    LEADER = "leader"
    """Participates in block production."""

    PASSIVE = "passive"
    """Relays and observes blocks without producing any."""


class PersistenceMode(Enum):
    """Whether a node keeps its chain storage across restarts."""

    PERSISTENT = "persistent"
    """Chain storage lives in the node's working directory."""

    IN_MEMORY = "inmemory"
    """Chain storage is lost when the process exits."""


class NodeDescriptor(StrictBaseModel):
    """
    Declaration of one node in a test topology.

    Declared once at topology-build time and immutable afterwards.
    Trust edges point from this node to the peers it bootstraps from.
    """

    alias: str
    """Unique node name within the topology."""

    trusted_peers: tuple[str, ...] = ()
    """Aliases of the peers this node trusts, in declaration order, without duplicates."""

    leadership: LeadershipMode = LeadershipMode.LEADER
    """Whether the node produces blocks."""

    persistence: PersistenceMode = PersistenceMode.PERSISTENT
    """Whether the node's storage survives a restart."""

    @field_validator("alias")
    @classmethod
    def _alias_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("node alias must not be empty")
        return value

    @field_validator("trusted_peers", mode="before")
    @classmethod
    def _dedupe_peers(cls, value: Any) -> tuple[str, ...]:
        # An ordered set: first occurrence wins.
        return tuple(dict.fromkeys(value))

    @field_validator("leadership", mode="before")
    @classmethod
    def _parse_leadership(cls, value: Any) -> LeadershipMode:
        return value if isinstance(value, LeadershipMode) else LeadershipMode(str(value).lower())

    @field_validator("persistence", mode="before")
    @classmethod
    def _parse_persistence(cls, value: Any) -> PersistenceMode:
        if isinstance(value, PersistenceMode):
            return value
        return PersistenceMode(str(value).lower().replace("_", "").replace("-", ""))

    def with_trusted_peer(self, alias: str) -> NodeDescriptor:
        """Return a copy of this descriptor that also trusts ``alias``."""
        peers = tuple(dict.fromkeys((*self.trusted_peers, alias)))
        return self.model_copy(update={"trusted_peers": peers})

    def passive(self) -> NodeDescriptor:
        """Return a copy of this descriptor in passive leadership mode."""
        return self.model_copy(update={"leadership": LeadershipMode.PASSIVE})

    def in_memory(self) -> NodeDescriptor:
        """Return a copy of this descriptor with in-memory storage."""
        return self.model_copy(update={"persistence": PersistenceMode.IN_MEMORY})

    @property
    def is_leader(self) -> bool:
        """Check if this node produces blocks."""
        return self.leadership is LeadershipMode.LEADER
