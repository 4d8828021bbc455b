"""Parameters of a network synchronization measurement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import field_validator

from testnet_harness.types import StrictBaseModel

from .config import (
    LONG_REPORT_INTERVAL,
    SECONDS_PER_NODE_HOP,
    STANDARD_REPORT_INTERVAL,
)


class SyncWaitParams(StrictBaseModel):
    """
    When a network counts as synchronized, and how long to wait for it.

    The network is synchronized once at least ``network_size - tolerance``
    nodes (never fewer than one) report the same height and tip.
    """

    network_size: int
    """Number of nodes taking part in the measurement."""

    tolerance: int = 0
    """Number of nodes allowed to lag behind or disagree."""

    timeout: float | None = None
    """Cap in seconds; derived from the network shape when unset."""

    @field_validator("network_size")
    @classmethod
    def _positive_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"network_size must be positive, got {value}")
        return value

    @field_validator("tolerance")
    @classmethod
    def _non_negative_tolerance(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"tolerance must not be negative, got {value}")
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _to_float(cls, value: Any) -> Any:
        return float(value) if isinstance(value, int) else value

    @classmethod
    def two_nodes(cls) -> SyncWaitParams:
        """Both nodes of a pair must agree."""
        return cls(network_size=2, tolerance=0)

    @classmethod
    def network(cls, network_size: int, tolerance: int) -> SyncWaitParams:
        return cls(network_size=network_size, tolerance=tolerance)

    @property
    def threshold(self) -> int:
        """Number of nodes that must agree."""
        return max(1, self.network_size - self.tolerance)

    @property
    def cap(self) -> float:
        """Seconds after which the measurement fails."""
        if self.timeout is not None:
            return self.timeout
        return self.network_size * max(1, self.tolerance) * SECONDS_PER_NODE_HOP


@dataclass(frozen=True, slots=True)
class MeasurementReportInterval:
    """How often a running measurement logs its progress."""

    seconds: float

    STANDARD: ClassVar[MeasurementReportInterval]
    LONG: ClassVar[MeasurementReportInterval]

    @classmethod
    def custom(cls, seconds: float) -> MeasurementReportInterval:
        if seconds <= 0:
            raise ValueError(f"report interval must be positive, got {seconds}")
        return cls(seconds)


MeasurementReportInterval.STANDARD = MeasurementReportInterval(STANDARD_REPORT_INTERVAL)
MeasurementReportInterval.LONG = MeasurementReportInterval(LONG_REPORT_INTERVAL)
