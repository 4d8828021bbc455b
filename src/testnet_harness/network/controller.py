"""
Composition of a whole test network.

`NetworkBuilder` validates the topology, allocates ports, creates the wallets
and writes the genesis description. The resulting `NetworkController` spawns
nodes in trust order and tears the network down when the test ends::

    with NetworkBuilder().with_topology(chain(["A", "B", "C"])).build() as network:
        network.spawn_all()
        measure_and_log_sync_time(list(network.nodes.values()), ...)

Leaving the block normally shuts every node down through its REST API. An
exception copies every working directory aside with the node's log, then
kills the processes.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

from testnet_harness.fragment import Wallet
from testnet_harness.node import (
    NodeHandle,
    NodeLifecycleState,
    NodeProcessController,
    NodeSettings,
    SpawnParams,
    TrustedPeerAddress,
)
from testnet_harness.node.config import NODE_LOG_FILE
from testnet_harness.topology import NodeDescriptor, Topology
from testnet_harness.types import HarnessError

from .errors import NodeAlreadySpawned, NodeNotFound, TrustedPeerNotRunning, WalletNotFound
from .genesis import BlockchainSettings, KeySource, WalletTemplate, write_genesis
from .persist import persist_dir_on_failure
from .ports import PortAllocator

logger = logging.getLogger(__name__)

WORKING_ROOT_PREFIX = "testnet_run_"
"""Prefix of the temporary working root when none is given."""


@dataclass(slots=True)
class NetworkController:
    """A test network: its declared topology and the nodes spawned so far."""

    topology: Topology
    """Validated trust topology."""

    working_root: Path
    """Directory holding the genesis and one working directory per node."""

    genesis_path: Path
    """Genesis description shared by every node."""

    ports: dict[str, tuple[int, int]]
    """(REST, P2P) ports of every declared node."""

    wallets: dict[str, Wallet] = field(default_factory=dict)
    """Wallets funded in the genesis, by alias."""

    processes: NodeProcessController = field(default_factory=NodeProcessController)
    """Launches and stops the node processes."""

    nodes: dict[str, NodeHandle] = field(default_factory=dict)
    """Spawned nodes, by alias, in spawn order."""

    def node(self, alias: str) -> NodeHandle:
        """The spawned node ``alias``."""
        try:
            return self.nodes[alias]
        except KeyError:
            raise NodeNotFound(alias) from None

    def wallet(self, alias: str) -> Wallet:
        """The wallet ``alias``."""
        try:
            return self.wallets[alias]
        except KeyError:
            raise WalletNotFound(alias) from None

    def _trusted_peer_addresses(self, alias: str) -> tuple[TrustedPeerAddress, ...]:
        addresses = []
        for peer in self.topology.trusted_peers(alias):
            handle = self.nodes.get(peer)
            if handle is None or handle.state is not NodeLifecycleState.RUNNING:
                raise TrustedPeerNotRunning(alias, peer)
            addresses.append(TrustedPeerAddress(alias=peer, address=handle.settings.p2p_address))
        return tuple(addresses)

    def settings_for(self, params: SpawnParams) -> NodeSettings:
        """Node settings for one spawn of ``params.alias``."""
        rest_port, p2p_port = self.ports[params.alias]
        return NodeSettings(
            alias=params.alias,
            working_dir=self.working_root / params.alias,
            rest_port=rest_port,
            p2p_port=p2p_port,
            trusted_peers=self._trusted_peer_addresses(params.alias),
            genesis_path=self.genesis_path,
            log_level=params.log_level,
            extra_args=params.extra_args,
        )

    def spawn(self, params: SpawnParams | str) -> NodeHandle:
        """
        Launch a declared node and wait until it reports Running.

        Raises:
            NodeNotFound: If the alias is not part of the topology.
            TrustedPeerNotRunning: If a peer the node trusts is not running.
            NodeAlreadySpawned: If the node still has a live process.
        """
        if isinstance(params, str):
            params = SpawnParams(alias=params)
        if params.alias not in self.topology:
            raise NodeNotFound(params.alias)

        previous = self.nodes.get(params.alias)
        if previous is not None and previous.state.has_process:
            raise NodeAlreadySpawned(params.alias)

        settings = self.settings_for(params)
        descriptor = params.apply(self.topology[params.alias])
        handle = self.processes.spawn(descriptor, settings)
        self.nodes[params.alias] = handle
        self.processes.wait_for_bootstrap(handle, params.bootstrap_timeout)
        return handle

    def spawn_all(self) -> list[NodeHandle]:
        """Spawn every declared node in trust order."""
        return [self.spawn(alias) for alias in self.topology.spawn_order]

    def shutdown_all(self) -> None:
        """
        Stop every node, most recently spawned first.

        Running nodes are shut down through their REST API, others are killed.
        Every node is attempted; the first failure is raised afterwards.
        """
        first_error: HarnessError | None = None
        for handle in reversed(list(self.nodes.values())):
            if handle.state is NodeLifecycleState.RUNNING:
                try:
                    self.processes.shutdown(handle)
                except HarnessError as exc:
                    logger.error("Shutdown of %s failed: %s", handle.alias, exc)
                    self.processes.kill(handle)
                    first_error = first_error or exc
            else:
                self.processes.kill(handle)
        if first_error is not None:
            raise first_error

    def kill_all(self) -> None:
        """Stop every node by signal."""
        for handle in reversed(list(self.nodes.values())):
            self.processes.kill(handle)

    def persist_on_failure(self, reason: str) -> list[Path]:
        """Copy every node's working directory aside with its captured log."""
        persisted = []
        for handle in self.nodes.values():
            contents = {
                NODE_LOG_FILE: handle.logs.content(),
                "failure.txt": f"{reason}\nstate: {handle.state.name}\n"
                f"failure reason: {handle.failure_reason or '-'}\n",
            }
            persisted.append(persist_dir_on_failure(handle.working_dir, contents))
        return persisted

    def __enter__(self) -> NetworkController:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is None:
            self.shutdown_all()
            return

        # Copy before killing so the directories reflect the failing moment.
        try:
            self.persist_on_failure(f"{exc_type.__name__ if exc_type else 'Error'}: {exc}")
        finally:
            self.kill_all()


@dataclass(slots=True)
class NetworkBuilder:
    """Fluent configuration of a test network."""

    topology: Topology | None = None
    blockchain: BlockchainSettings = field(default_factory=BlockchainSettings)
    wallet_templates: list[WalletTemplate] = field(default_factory=list)
    key_source: KeySource | None = None
    processes: NodeProcessController = field(default_factory=NodeProcessController)
    working_root: Path | None = None
    port_allocator: PortAllocator = field(default_factory=PortAllocator)

    def with_topology(self, topology: Topology | Iterable[NodeDescriptor]) -> NetworkBuilder:
        """Set the topology; descriptor lists are validated immediately."""
        self.topology = topology if isinstance(topology, Topology) else Topology.build(topology)
        return self

    def with_blockchain_config(self, settings: BlockchainSettings) -> NetworkBuilder:
        self.blockchain = settings
        return self

    def with_wallet(self, alias: str, value: int) -> NetworkBuilder:
        self.wallet_templates.append(WalletTemplate(alias=alias, value=value))
        return self

    def with_key_source(self, key_source: KeySource) -> NetworkBuilder:
        """Supply addresses and signers for the declared wallets."""
        self.key_source = key_source
        return self

    def with_node_command(self, *command: str) -> NetworkBuilder:
        self.processes = NodeProcessController(
            command=command,
            poll_interval=self.processes.poll_interval,
            kill_grace=self.processes.kill_grace,
            log_buffer_lines=self.processes.log_buffer_lines,
            env=self.processes.env,
        )
        return self

    def with_process_controller(self, processes: NodeProcessController) -> NetworkBuilder:
        self.processes = processes
        return self

    def with_working_dir(self, path: Path) -> NetworkBuilder:
        self.working_root = path
        return self

    def with_port_allocator(self, allocator: PortAllocator) -> NetworkBuilder:
        self.port_allocator = allocator
        return self

    def build(self) -> NetworkController:
        """
        Prepare the network without launching anything.

        Raises:
            HarnessError: If no topology was set, or wallets were declared
                without a key source.
        """
        if self.topology is None:
            raise HarnessError("network topology not set")
        if self.wallet_templates and self.key_source is None:
            raise HarnessError("wallets declared without a key source")

        root = self.working_root or Path(tempfile.mkdtemp(prefix=WORKING_ROOT_PREFIX))
        root.mkdir(parents=True, exist_ok=True)

        ports = {alias: self.port_allocator.allocate_ports() for alias in self.topology.spawn_order}
        wallets = {}
        for template in self.wallet_templates:
            assert self.key_source is not None
            wallets[template.alias] = template.create(self.key_source)

        genesis_path = write_genesis(root, self.blockchain, self.topology, wallets.values())
        logger.info(
            "Network prepared in %s: %d nodes, %d wallets",
            root,
            len(self.topology),
            len(wallets),
        )
        return NetworkController(
            topology=self.topology,
            working_root=root,
            genesis_path=genesis_path,
            ports=ports,
            wallets=wallets,
            processes=self.processes,
        )
