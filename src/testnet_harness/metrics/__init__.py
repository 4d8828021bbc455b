"""
Metrics module for observability.

Provides counters and histograms for tracking what the harness observes.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    bootstrap_time,
    fragment_outcomes,
    fragments_submitted,
    generate_metrics,
    mock_calls,
    nodes_spawned,
    sync_time,
)

__all__ = [
    "REGISTRY",
    "bootstrap_time",
    "fragment_outcomes",
    "fragments_submitted",
    "generate_metrics",
    "mock_calls",
    "nodes_spawned",
    "sync_time",
]
