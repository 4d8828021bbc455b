"""Node lifecycle constants."""

from __future__ import annotations

from typing import Final

LOCALHOST: Final[str] = "127.0.0.1"
"""Interface every node under test binds to."""

BOOTSTRAP_TIMEOUT: Final[float] = 150.0
"""Seconds a node may take to report Running after launch."""

BOOTSTRAP_POLL_INTERVAL: Final[float] = 2.0
"""Seconds between two status polls while bootstrapping."""

MIN_STATUS_TIMEOUT: Final[float] = 0.05
"""Lower bound of the request timeout of a status poll near the bootstrap deadline."""

SHUTDOWN_TIMEOUT: Final[float] = 30.0
"""Seconds a node may take to exit after a shutdown request."""

KILL_GRACE: Final[float] = 5.0
"""Seconds between SIGTERM and SIGKILL during teardown."""

LOG_CAPTURE_JOIN_TIMEOUT: Final[float] = 2.0
"""Seconds to wait for the log capture thread to drain after the process exits."""

LOG_TAIL_LINES: Final[int] = 50
"""Number of log lines attached to lifecycle errors."""

NODE_CONFIG_FILE: Final[str] = "node_config.yaml"
"""Name of the generated node configuration inside the working directory."""

NODE_LOG_FILE: Final[str] = "node.log"
"""Name of the captured log written next to a persisted working directory."""
