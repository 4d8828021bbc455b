"""
Global configuration for the test harness.

This module contains environment-specific settings that apply across all components.
"""

import os
import shlex

HARNESS_NODE_COMMAND: list[str] = shlex.split(os.environ.get("HARNESS_NODE_COMMAND", "node"))
"""
Command used to launch a node under test.

The node config path is appended as ``--config <path>``. Split with shell rules
so wrappers such as ``python fake_node.py`` can be supplied.
"""

if not HARNESS_NODE_COMMAND:
    raise ValueError("Invalid HARNESS_NODE_COMMAND environment variable: empty command")

_log_buffer_lines = os.environ.get("HARNESS_LOG_BUFFER_LINES", "10000")

if not _log_buffer_lines.isdigit() or int(_log_buffer_lines) == 0:
    raise ValueError(
        f"Invalid HARNESS_LOG_BUFFER_LINES environment variable: '{_log_buffer_lines}'. "
        "Expected a positive integer."
    )

HARNESS_LOG_BUFFER_LINES: int = int(_log_buffer_lines)
"""Maximum number of stderr lines retained per node process."""

HARNESS_PERSIST_PREFIX: str = os.environ.get("HARNESS_PERSIST_PREFIX", "testnet_harness_")
"""Prefix of the temporary directory that receives node artifacts after a failure."""
