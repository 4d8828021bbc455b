"""
Node process lifecycle.

Spawns node binaries, waits for them to bootstrap, captures their logs and
stops them.
"""

from .errors import (
    BootstrapTimeout,
    CannotSpawnNode,
    InvalidStateTransition,
    NodeExitedDuringBootstrap,
    NodeFailedToShutdown,
    PortUnavailable,
    ShutdownProcedure,
)
from .logs import LogLevel, LogLine, NodeLogBuffer, capture_stream
from .process import NodeHandle, NodeProcessController
from .settings import NodeSettings, SpawnParams, TrustedPeerAddress, port_is_free
from .states import NodeLifecycleState

__all__ = [
    # Lifecycle
    "NodeHandle",
    "NodeLifecycleState",
    "NodeProcessController",
    # Settings
    "NodeSettings",
    "SpawnParams",
    "TrustedPeerAddress",
    "port_is_free",
    # Logs
    "LogLevel",
    "LogLine",
    "NodeLogBuffer",
    "capture_stream",
    # Errors
    "BootstrapTimeout",
    "CannotSpawnNode",
    "InvalidStateTransition",
    "NodeExitedDuringBootstrap",
    "NodeFailedToShutdown",
    "PortUnavailable",
    "ShutdownProcedure",
]
