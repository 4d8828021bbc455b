"""Payloads returned by the node REST API."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import field_validator

from testnet_harness.types import NodeApiModel


class NodeState(Enum):
    """Startup phase reported by the node's status endpoint."""

    STARTING_REST_SERVER = "StartingRestServer"
    PREPARING_STORAGE = "PreparingStorage"
    PREPARING_BLOCK0 = "PreparingBlock0"
    BOOTSTRAPPING = "Bootstrapping"
    STARTING_WORKERS = "StartingWorkers"
    RUNNING = "Running"


class NodeStatus(NodeApiModel):
    """Body of ``GET /status``."""

    state: NodeState


class StatsDetail(NodeApiModel):
    """Chain statistics. Only present once the node is running."""

    last_block_height: int | None = None
    last_block_hash: str | None = None
    last_block_date: str | None = None
    tx_recv_cnt: int = 0
    block_recv_cnt: int = 0
    uptime: int | None = None

    @field_validator("last_block_height", mode="before")
    @classmethod
    def _parse_height(cls, value: Any) -> Any:
        # Heights are rendered as decimal strings by the node.
        return int(value) if isinstance(value, str) else value


class NodeStats(NodeApiModel):
    """Body of ``GET /stats``."""

    state: NodeState
    stats: StatsDetail | None = None

    @property
    def last_block_height(self) -> int | None:
        """Height of the last block, or None while the node is starting."""
        return self.stats.last_block_height if self.stats else None


class FragmentStatusKind(Enum):
    """Mempool classification of a fragment."""

    PENDING = "Pending"
    REJECTED = "Rejected"
    IN_A_BLOCK = "InABlock"


class FragmentStatus(NodeApiModel):
    """
    Status of one fragment in a node's logs.

    The node renders it as ``"Pending"``, ``{"Rejected": {"reason": ...}}`` or
    ``{"InABlock": {"date": "<epoch>.<slot>", "block": "<hash>"}}``.
    """

    kind: FragmentStatusKind
    reason: str | None = None
    epoch: int | None = None
    slot: int | None = None
    block: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> FragmentStatus:
        """Parse the node's status encoding."""
        if isinstance(raw, FragmentStatus):
            return raw
        if raw == FragmentStatusKind.PENDING.value:
            return cls(kind=FragmentStatusKind.PENDING)
        if isinstance(raw, dict) and FragmentStatusKind.REJECTED.value in raw:
            body = raw[FragmentStatusKind.REJECTED.value] or {}
            return cls(kind=FragmentStatusKind.REJECTED, reason=str(body.get("reason", "")))
        if isinstance(raw, dict) and FragmentStatusKind.IN_A_BLOCK.value in raw:
            body = raw[FragmentStatusKind.IN_A_BLOCK.value]
            epoch, _, slot = str(body["date"]).partition(".")
            return cls(
                kind=FragmentStatusKind.IN_A_BLOCK,
                epoch=int(epoch),
                slot=int(slot or 0),
                block=str(body["block"]),
            )
        raise ValueError(f"unrecognized fragment status: {raw!r}")

    @property
    def is_pending(self) -> bool:
        return self.kind is FragmentStatusKind.PENDING

    @property
    def is_rejected(self) -> bool:
        return self.kind is FragmentStatusKind.REJECTED

    @property
    def is_in_a_block(self) -> bool:
        return self.kind is FragmentStatusKind.IN_A_BLOCK


class FragmentLog(NodeApiModel):
    """One entry of ``GET /fragment/logs``."""

    fragment_id: str
    received_from: str = ""
    received_at: str = ""
    last_updated_at: str = ""
    status: FragmentStatus

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> FragmentStatus:
        return FragmentStatus.from_raw(value)


class RejectedFragmentInfo(NodeApiModel):
    """A fragment refused during batch submission."""

    id: str
    pool_number: int = 0
    reason: str


class FragmentsProcessingSummary(NodeApiModel):
    """Body of ``POST /fragment/batch``."""

    accepted: list[str] = []
    rejected: list[RejectedFragmentInfo] = []

    @property
    def is_all_accepted(self) -> bool:
        return not self.rejected


class AccountState(NodeApiModel):
    """Body of ``GET /account/{address}``."""

    value: int
    counter: int
