"""
REST client for the node under test.

Provides typed access to:
- /status, /stats, /tip - lifecycle and chain progress
- /fragment, /fragment/batch, /fragment/logs - mempool submission and tracking
- /shutdown - graceful stop
- /account/{address} - account balance and counter
"""

from .client import API_PREFIX, NodeRestClient, RestError
from .models import (
    AccountState,
    FragmentLog,
    FragmentsProcessingSummary,
    FragmentStatus,
    FragmentStatusKind,
    NodeState,
    NodeStats,
    NodeStatus,
    RejectedFragmentInfo,
    StatsDetail,
)

__all__ = [
    "API_PREFIX",
    "AccountState",
    "FragmentLog",
    "FragmentStatus",
    "FragmentStatusKind",
    "FragmentsProcessingSummary",
    "NodeRestClient",
    "NodeState",
    "NodeStats",
    "NodeStatus",
    "RejectedFragmentInfo",
    "RestError",
    "StatsDetail",
]
