"""Node doubles for harness tests."""

from .fake_node import (
    EXIT_DURING_BOOTSTRAP_CODE,
    SHUTDOWN_ERROR,
    Behaviour,
    FakeNode,
    FakeNodeServer,
    Ledger,
)
from .launch import FAKE_NODE_SCRIPT, fake_node_controller
from .stubs import RestNode, ScriptedFragmentNode, ScriptedSyncNode

__all__ = [
    "Behaviour",
    "EXIT_DURING_BOOTSTRAP_CODE",
    "FAKE_NODE_SCRIPT",
    "FakeNode",
    "FakeNodeServer",
    "Ledger",
    "RestNode",
    "SHUTDOWN_ERROR",
    "ScriptedFragmentNode",
    "ScriptedSyncNode",
    "fake_node_controller",
]
