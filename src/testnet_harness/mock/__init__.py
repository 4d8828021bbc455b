"""
Mock wire-protocol peer.

A scripted neighbour for the node under test that records which calls the
node makes and verifies them afterwards.
"""

from .call_log import CallLog, CallLogEntry
from .server import MockBuilder, MockController, ProtocolMockServer
from .verifier import MockExitCode, MockVerifier

__all__ = [
    "CallLog",
    "CallLogEntry",
    "MockBuilder",
    "MockController",
    "MockExitCode",
    "MockVerifier",
    "ProtocolMockServer",
]
