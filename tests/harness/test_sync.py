"""Tests for synchronization time measurement."""

from __future__ import annotations

import time

import pytest
from pydantic import ValidationError

from testnet_harness.sync import (
    MeasurementReportInterval,
    NodeReading,
    SyncErrorsInLogs,
    SyncSnapshot,
    SyncTimeMeasurer,
    SyncTimeoutExceeded,
    SyncWaitParams,
    measure_and_log_sync_time,
)

from .helpers import ScriptedSyncNode

pytestmark = pytest.mark.timeout(30)

TIP_1 = "1" * 64
TIP_2 = "2" * 64
TIP_3 = "3" * 64


def reading(alias: str, height: int | None, tip: str | None) -> NodeReading:
    return NodeReading(alias=alias, height=height, tip=tip)


class TestSyncWaitParams:
    """Tests for agreement threshold and cap."""

    def test_threshold(self) -> None:
        """Five nodes with tolerance three need two in agreement."""
        assert SyncWaitParams.network(5, 3).threshold == 2

    def test_threshold_never_below_one(self) -> None:
        """Excessive tolerance still needs one node."""
        assert SyncWaitParams.network(2, 10).threshold == 1

    def test_two_nodes(self) -> None:
        """Both nodes of a pair must agree."""
        params = SyncWaitParams.two_nodes()

        assert params.threshold == 2
        assert params.cap == 2 * 20.0

    def test_derived_cap(self) -> None:
        """The cap grows with the network size and tolerance."""
        assert SyncWaitParams.network(4, 2).cap == 4 * 2 * 20.0

    def test_explicit_cap(self) -> None:
        """An explicit timeout overrides the derived cap."""
        assert SyncWaitParams(network_size=3, timeout=5).cap == 5.0

    @pytest.mark.parametrize("kwargs", [{"network_size": 0}, {"network_size": 2, "tolerance": -1}])
    def test_invalid(self, kwargs: dict[str, int]) -> None:
        """Sizes must be positive and tolerances non-negative."""
        with pytest.raises(ValidationError):
            SyncWaitParams(**kwargs)

    def test_report_intervals(self) -> None:
        """Presets and custom intervals."""
        assert MeasurementReportInterval.STANDARD.seconds == 20.0
        assert MeasurementReportInterval.LONG.seconds == 100.0
        assert MeasurementReportInterval.custom(3.5).seconds == 3.5
        with pytest.raises(ValueError):
            MeasurementReportInterval.custom(0)


class TestSyncSnapshot:
    """Tests for grouping nodes by chain position."""

    def test_majority(self) -> None:
        """The height shared by the most nodes wins."""
        snapshot = SyncSnapshot(
            readings=(
                reading("A", 10, TIP_1),
                reading("B", 10, TIP_1),
                reading("C", 9, TIP_2),
            ),
            elapsed=0.0,
        )

        assert snapshot.majority == (10, 2)
        assert snapshot.agreeing == 2

    def test_nodes_agree_on_height(self) -> None:
        """Nodes at the same height agree whatever tip they report."""
        snapshot = SyncSnapshot(
            readings=(reading("A", 10, TIP_1), reading("B", 10, TIP_2)), elapsed=0.0
        )

        assert snapshot.majority == (10, 2)
        assert "A=10@11111111" in str(snapshot)

    def test_tie_goes_to_greater_height(self) -> None:
        """Between equally large groups the higher chain wins."""
        snapshot = SyncSnapshot(
            readings=(
                reading("A", 9, TIP_1),
                reading("B", 9, TIP_1),
                reading("C", 11, TIP_2),
                reading("D", 11, TIP_2),
            ),
            elapsed=0.0,
        )

        assert snapshot.majority == (11, 2)

    def test_unreadable_nodes_do_not_agree(self) -> None:
        """A node that could not be read belongs to no group."""
        snapshot = SyncSnapshot(
            readings=(NodeReading(alias="A", error="timeout"), reading("B", None, TIP_1)),
            elapsed=1.0,
        )

        assert snapshot.majority == (None, 0)
        assert "B=<no blocks>" in str(snapshot)
        assert "A=<timeout>" in str(snapshot)

    def test_failed_read_is_captured(self) -> None:
        """A node raising a harness error yields a reading with the error."""
        node = ScriptedSyncNode("A", [None])

        result = NodeReading.take(node)

        assert result.height is None
        assert result.error is not None and "unreachable" in result.error


class TestSyncTimeMeasurer:
    """Tests for the polling loop."""

    def test_already_in_sync(self) -> None:
        """A network in sync at the first round measures close to zero."""
        nodes = [ScriptedSyncNode(alias, [(5, TIP_1)]) for alias in ("A", "B")]

        duration = SyncTimeMeasurer(SyncWaitParams.two_nodes(), interval=0.05).measure(nodes)

        assert duration < 0.5

    def test_converges_after_some_rounds(self) -> None:
        """The duration is taken at the start of the first agreeing round."""
        nodes = [
            ScriptedSyncNode("A", [(3, TIP_1), (4, TIP_2), (5, TIP_3)]),
            ScriptedSyncNode("B", [(1, TIP_1), (3, TIP_1), (5, TIP_3)]),
        ]
        measurer = SyncTimeMeasurer(SyncWaitParams.two_nodes(), interval=0.1)

        duration = measurer.measure(nodes)

        assert 0.2 <= duration < 1.0
        assert measurer.last_snapshot is not None
        assert measurer.last_snapshot.majority == (5, 2)

    def test_tolerance_lets_stragglers_lag(self) -> None:
        """Five nodes with tolerance three are in sync once two agree."""
        nodes = [
            ScriptedSyncNode("A", [(7, TIP_1)]),
            ScriptedSyncNode("B", [(7, TIP_1)]),
            ScriptedSyncNode("C", [(2, TIP_2)]),
            ScriptedSyncNode("D", [None]),
            ScriptedSyncNode("E", [(3, TIP_3)]),
        ]

        duration = SyncTimeMeasurer(SyncWaitParams.network(5, 3), interval=0.05).measure(nodes)

        assert duration < 0.5

    def test_any_shared_height_converges(self) -> None:
        """Two of five nodes at one height converge even with different tips."""
        nodes = [
            ScriptedSyncNode("A", [(7, TIP_1)]),
            ScriptedSyncNode("B", [(7, TIP_2)]),
            ScriptedSyncNode("C", [(2, TIP_3)]),
            ScriptedSyncNode("D", [(3, TIP_3)]),
            ScriptedSyncNode("E", [(4, TIP_3)]),
        ]
        params = SyncWaitParams(network_size=5, tolerance=3, timeout=0.5)
        measurer = SyncTimeMeasurer(params, interval=0.05)

        duration = measurer.measure(nodes)

        assert duration < 0.5
        assert measurer.last_snapshot is not None
        assert measurer.last_snapshot.majority == (7, 2)

    def test_duration_never_exceeds_cap(self) -> None:
        """Agreement found by the round scheduled at the cap reports at most the cap."""
        nodes = [
            ScriptedSyncNode("A", [(1, TIP_1), (3, TIP_3)]),
            ScriptedSyncNode("B", [(2, TIP_2), (3, TIP_3)]),
        ]
        params = SyncWaitParams(network_size=2, timeout=0.3)

        duration = SyncTimeMeasurer(params, interval=0.3).measure(nodes)

        assert 0.25 <= duration <= 0.3

    def test_unreachable_node_recovers(self) -> None:
        """A node unreadable in early rounds can still complete the agreement."""
        nodes = [
            ScriptedSyncNode("A", [(4, TIP_1)]),
            ScriptedSyncNode("B", [None, None, (4, TIP_1)]),
        ]

        duration = SyncTimeMeasurer(SyncWaitParams.two_nodes(), interval=0.05).measure(nodes)

        assert duration >= 0.1

    def test_timeout(self) -> None:
        """A network that never agrees fails at the cap with the last state."""
        nodes = [ScriptedSyncNode("A", [(1, TIP_1)]), ScriptedSyncNode("B", [(2, TIP_2)])]
        params = SyncWaitParams(network_size=2, timeout=0.5)

        started = time.monotonic()
        with pytest.raises(SyncTimeoutExceeded) as exc_info:
            SyncTimeMeasurer(params, interval=0.1).measure(nodes)
        elapsed = time.monotonic() - started

        assert 0.5 <= elapsed < 1.5
        assert exc_info.value.timeout == 0.5
        assert exc_info.value.achieved_state.agreeing == 1


class TestMeasureAndLogSyncTime:
    """Tests for the measurement entry point."""

    def test_clean_network(self) -> None:
        """A synchronized network without errors gives its duration."""
        nodes = [ScriptedSyncNode(alias, [(2, TIP_1)]) for alias in ("A", "B", "C")]

        duration = measure_and_log_sync_time(
            nodes,
            SyncWaitParams.network(3, 0),
            "three nodes",
            MeasurementReportInterval.custom(1.0),
        )

        assert duration >= 0.0

    def test_errors_in_logs(self) -> None:
        """Error records on any node fail the measurement after sync."""
        nodes = [
            ScriptedSyncNode("A", [(2, TIP_1)]),
            ScriptedSyncNode("B", [(2, TIP_1)], errors=["Block0Mismatch"]),
        ]

        with pytest.raises(SyncErrorsInLogs) as exc_info:
            measure_and_log_sync_time(nodes, SyncWaitParams.two_nodes(), "pair")

        assert exc_info.value.alias == "B"
        assert "Block0Mismatch" in exc_info.value.logs[0]
