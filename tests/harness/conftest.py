"""
Shared pytest fixtures for harness tests.

Provides fake nodes, both in-process and as separate processes, with
automatic cleanup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from testnet_harness.network import KeySource, PortAllocator
from testnet_harness.node import (
    NodeHandle,
    NodeProcessController,
    NodeSettings,
)
from testnet_harness.rest import NodeRestClient
from testnet_harness.topology import NodeDescriptor
from testnet_harness.types import blake2b_256

from .helpers import (
    Behaviour,
    FakeNode,
    FakeNodeServer,
    Ledger,
    RestNode,
    fake_node_controller,
)

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@pytest.fixture(scope="session")
def port_allocator() -> PortAllocator:
    """
    Provide a shared port allocator across all tests.

    Session-scoped so that no two tests are handed the same port.
    """
    return PortAllocator()


@pytest.fixture
def key_source() -> KeySource:
    """Provide deterministic addresses and signers derived from the wallet alias."""

    def keys(alias: str) -> tuple[str, Callable[[bytes], str]]:
        secret = alias.encode("utf-8")
        return f"addr_{alias.lower()}", lambda payload: blake2b_256(secret + payload)

    return keys


@pytest.fixture
def ledger() -> Ledger:
    """Provide a ledger with two funded accounts."""
    return Ledger.with_funds({"addr_alice": 1_000_000, "addr_bob": 1_000_000})


@pytest.fixture
def fake_server() -> Generator[Callable[..., FakeNodeServer], None, None]:
    """
    Provide a factory of in-process fake nodes.

    Every server started through the factory is stopped after the test.
    """
    servers: list[FakeNodeServer] = []

    def start(node: FakeNode) -> FakeNodeServer:
        server = FakeNodeServer(node).start_and_wait()
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.stop()


@pytest.fixture
def rest_node(
    fake_server: Callable[..., FakeNodeServer],
) -> Generator[Callable[..., RestNode], None, None]:
    """Provide a factory of REST-only nodes backed by in-process fake nodes."""
    clients: list[NodeRestClient] = []

    def create(
        alias: str, ledger: Ledger, behaviour: Behaviour = Behaviour.NORMAL
    ) -> RestNode:
        server = fake_server(FakeNode(alias=alias, ledger=ledger, behaviour=behaviour))
        client = NodeRestClient(server.url)
        clients.append(client)
        return RestNode(alias=alias, rest=client)

    yield create

    for client in clients:
        client.close()


@pytest.fixture
def node_settings(
    tmp_path: Path, port_allocator: PortAllocator
) -> Callable[[str], NodeSettings]:
    """Provide a factory of node settings with fresh ports and working directories."""

    def create(alias: str) -> NodeSettings:
        rest_port, p2p_port = port_allocator.allocate_ports()
        return NodeSettings(
            alias=alias,
            working_dir=tmp_path / alias,
            rest_port=rest_port,
            p2p_port=p2p_port,
        )

    return create


@pytest.fixture
def spawn_fake_node(
    node_settings: Callable[[str], NodeSettings],
) -> Generator[Callable[..., tuple[NodeProcessController, NodeHandle]], None, None]:
    """
    Provide a factory that launches fake node processes.

    Every process launched through the factory is killed after the test.
    """
    spawned: list[tuple[NodeProcessController, NodeHandle]] = []

    def spawn(
        alias: str = "A", behaviour: Behaviour = Behaviour.NORMAL
    ) -> tuple[NodeProcessController, NodeHandle]:
        controller = fake_node_controller(behaviour)
        handle = controller.spawn(NodeDescriptor(alias=alias), node_settings(alias))
        spawned.append((controller, handle))
        return controller, handle

    yield spawn

    for controller, handle in spawned:
        controller.kill(handle)
