"""
Metric registry using prometheus_client.

Records what the harness observes while driving a test network.
Exposes metrics in Prometheus text format via the mock server's /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a dedicated registry for harness metrics.
#
# Using a dedicated registry avoids pollution from default Python process metrics.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Node Lifecycle
# -----------------------------------------------------------------------------

nodes_spawned = Counter(
    "harness_nodes_spawned_total",
    "Node processes launched",
    registry=REGISTRY,
)

bootstrap_time = Histogram(
    "harness_bootstrap_seconds",
    "Time from spawn until the node reports Running",
    buckets=(1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 150.0),
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Fragments
# -----------------------------------------------------------------------------

fragments_submitted = Counter(
    "harness_fragments_submitted_total",
    "Fragments submitted through a node REST API",
    registry=REGISTRY,
)

fragment_outcomes = Counter(
    "harness_fragment_outcomes_total",
    "Terminal fragment classifications",
    ["outcome"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Synchronization
# -----------------------------------------------------------------------------

sync_time = Histogram(
    "harness_sync_seconds",
    "Time until the network converged on one tip",
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Mock Peer
# -----------------------------------------------------------------------------

mock_calls = Counter(
    "harness_mock_calls_total",
    "Inbound wire-protocol calls served by the mock peer",
    ["method"],
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
