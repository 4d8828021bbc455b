"""
Whole-network tests against fake node processes.

Networks are built from a topology, spawned in trust order and torn down
exactly as they would be with the real node binary.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
import yaml

from testnet_harness.fragment import FragmentSender, FragmentVerifier
from testnet_harness.network import (
    BlockchainSettings,
    KeySource,
    NetworkBuilder,
    NetworkController,
    NodeAlreadySpawned,
    NodeNotFound,
    PortAllocator,
    PortsExhausted,
    TrustedPeerNotRunning,
    WalletNotFound,
    genesis_description,
    persist_dir_on_failure,
)
from testnet_harness.node import NodeLifecycleState, SpawnParams
from testnet_harness.topology import LeadershipMode, NodeDescriptor, Topology, chain, star
from testnet_harness.types import HarnessError
from testnet_harness.wire import ProtocolVersion

from .helpers import fake_node_controller

pytestmark = pytest.mark.timeout(90)


@pytest.fixture
def builder(tmp_path: Path, port_allocator: PortAllocator) -> NetworkBuilder:
    """Provide a network builder that launches fake node processes."""
    return (
        NetworkBuilder()
        .with_process_controller(fake_node_controller())
        .with_working_dir(tmp_path / "network")
        .with_port_allocator(port_allocator)
        .with_blockchain_config(BlockchainSettings(slot_duration=1))
    )


class TestNetworkBuilder:
    """Tests for preparing a network without launching it."""

    def test_requires_topology(self) -> None:
        """Building without a topology is refused."""
        with pytest.raises(HarnessError, match="topology"):
            NetworkBuilder().build()

    def test_wallets_require_keys(self, builder: NetworkBuilder) -> None:
        """Wallets cannot be created without a key source."""
        builder.with_topology(chain(["A"])).with_wallet("Alice", 100)

        with pytest.raises(HarnessError, match="key source"):
            builder.build()

    def test_prepares_ports_wallets_and_genesis(
        self, builder: NetworkBuilder, key_source: KeySource
    ) -> None:
        """Every node gets distinct ports and the genesis funds every wallet."""
        network = (
            builder.with_topology(star("Hub", ["L1", "L2"]))
            .with_wallet("Alice", 500)
            .with_key_source(key_source)
            .build()
        )

        ports = [port for pair in network.ports.values() for port in pair]
        assert len(set(ports)) == 6
        assert network.nodes == {}
        assert network.wallet("Alice").address == "addr_alice"

        with network.genesis_path.open(encoding="utf-8") as f:
            genesis = yaml.safe_load(f)
        assert genesis["initial"][0]["fund"] == [{"address": "addr_alice", "value": 500}]
        assert genesis["blockchain_configuration"]["slot_duration"] == 1

    def test_unknown_wallet(self, builder: NetworkBuilder) -> None:
        """Looking up an undeclared wallet fails."""
        network = builder.with_topology(chain(["A"])).build()

        with pytest.raises(WalletNotFound):
            network.wallet("Nobody")

    def test_genesis_lists_leaders_only(self) -> None:
        """Passive nodes are not consensus leaders."""
        topology = Topology.build(
            [
                NodeDescriptor(alias="L"),
                NodeDescriptor(alias="P", leadership=LeadershipMode.PASSIVE),
            ]
        )
        settings = BlockchainSettings(consensus=ProtocolVersion.BFT, block0_date=1_700_000_000)

        description = genesis_description(settings, topology, [])

        assert description["blockchain_configuration"]["consensus_leader_ids"] == ["L"]
        assert description["blockchain_configuration"]["block0_consensus"] == "bft"
        assert description["blockchain_configuration"]["block0_date"] == 1_700_000_000


class TestSpawning:
    """Tests for spawning nodes in trust order."""

    def test_spawn_all_in_trust_order(self, builder: NetworkBuilder) -> None:
        """Nodes come up in spawn order and each dials its running peers."""
        with builder.with_topology(chain(["A", "B", "C"])).build() as network:
            handles = network.spawn_all()

            assert [h.alias for h in handles] == ["A", "B", "C"]
            assert all(h.state is NodeLifecycleState.RUNNING for h in handles)

            with network.node("B").settings.config_path.open(encoding="utf-8") as f:
                config = yaml.safe_load(f)
            assert config["p2p"]["trusted_peers"] == [
                {"alias": "A", "address": network.node("A").settings.p2p_address}
            ]

        assert all(h.state is NodeLifecycleState.STOPPED for h in handles)

    def test_peer_must_be_running(self, builder: NetworkBuilder) -> None:
        """A node cannot be spawned before the peers it trusts."""
        network = builder.with_topology(chain(["A", "B"])).build()

        with pytest.raises(TrustedPeerNotRunning) as exc_info:
            network.spawn("B")

        assert (exc_info.value.alias, exc_info.value.peer) == ("B", "A")
        assert network.nodes == {}

    def test_unknown_alias(self, builder: NetworkBuilder) -> None:
        """Only declared nodes can be spawned."""
        network = builder.with_topology(chain(["A"])).build()

        with pytest.raises(NodeNotFound):
            network.spawn("Z")
        with pytest.raises(NodeNotFound):
            network.node("A")

    def test_spawn_twice(self, builder: NetworkBuilder) -> None:
        """A node with a live process cannot be spawned again."""
        with builder.with_topology(chain(["A"])).build() as network:
            network.spawn("A")

            with pytest.raises(NodeAlreadySpawned):
                network.spawn("A")

    def test_respawn_after_shutdown(self, builder: NetworkBuilder) -> None:
        """A stopped node can be spawned again with overrides."""
        with builder.with_topology(chain(["A"])).build() as network:
            first = network.spawn("A")
            network.processes.shutdown(first)

            second = network.spawn(SpawnParams(alias="A", leadership=LeadershipMode.PASSIVE))

            assert second is not first
            assert second.descriptor.leadership is LeadershipMode.PASSIVE
            assert network.node("A") is second


class TestTeardown:
    """Tests for the end of a network's life."""

    def test_failure_kills_and_persists(
        self, builder: NetworkBuilder, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An exception inside the block persists then kills every node."""
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
        network = builder.with_topology(chain(["A", "B"])).build()

        with pytest.raises(RuntimeError, match="assertion in test"):
            with network:
                network.spawn_all()
                raise RuntimeError("assertion in test")

        assert all(not h.is_alive() for h in network.nodes.values())
        assert all(h.state is NodeLifecycleState.STOPPED for h in network.nodes.values())
        persisted = tmp_path.glob("testnet_harness_*")
        assert sorted(sorted(p.name for p in d.iterdir()) for d in persisted) == [
            ["A", "failure.txt", "node.log"],
            ["B", "failure.txt", "node.log"],
        ]

    def test_persist_on_failure(
        self, builder: NetworkBuilder, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Working directories are copied aside with the captured log and the reason."""
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
        with builder.with_topology(chain(["A"])).build() as network:
            network.spawn_all()
            persisted = network.persist_on_failure("fragment never converged")

        assert len(persisted) == 1
        target = persisted[0]
        assert target.parent == tmp_path
        assert (target / "A" / "node_config.yaml").exists()
        assert "rest server listening" in (target / "node.log").read_text(encoding="utf-8")
        failure = (target / "failure.txt").read_text(encoding="utf-8")
        assert "fragment never converged" in failure
        assert "RUNNING" in failure

    def test_persist_missing_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A directory that was never created still gets the extra files."""
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))

        target = persist_dir_on_failure(tmp_path / "missing", {"note.txt": "hello"}, prefix="run_")

        assert target.name.startswith("run_")
        assert (target / "note.txt").read_text(encoding="utf-8") == "hello"
        assert not (target / "missing").exists()


class TestFragmentsOnProcesses:
    """Fragment flow through a real node process."""

    def test_round_trip(self, builder: NetworkBuilder, key_source: KeySource) -> None:
        """Transfers submitted through the process REST API land in blocks."""
        network: NetworkController = (
            builder.with_topology(chain(["A"]))
            .with_wallet("Alice", 10_000)
            .with_wallet("Bob", 10_000)
            .with_key_source(key_source)
            .build()
        )
        sender = FragmentSender(FragmentVerifier(interval=0.2))

        with network:
            node = network.spawn("A")
            alice, bob = network.wallet("Alice"), network.wallet("Bob")

            checks = sender.send_transactions_round_trip(1, alice, bob, node, 250, timeout=10.0)

            assert len(checks) == 2
            assert alice.sync_with(node).value == 10_000
            assert bob.sync_with(node).counter == 1


class TestPortAllocator:
    """Tests for port allocation."""

    def test_pairs_are_unique(self) -> None:
        """No port is handed out twice."""
        allocator = PortAllocator(rest_base=28400, p2p_base=29400)
        pairs = [allocator.allocate_ports() for _ in range(5)]

        ports = [port for pair in pairs for port in pair]
        assert len(set(ports)) == 10
        assert all(28400 <= rest < 29400 <= p2p for rest, p2p in pairs)

    def test_reset(self) -> None:
        """Resetting starts over from the base ports."""
        allocator = PortAllocator(rest_base=28500, p2p_base=29500)
        first = allocator.allocate_rest_port()
        allocator.reset()

        assert allocator.allocate_rest_port() == first

    def test_exhausted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A range with no bindable port is an error."""
        monkeypatch.setattr("testnet_harness.network.ports.port_is_free", lambda port, host: False)
        allocator = PortAllocator()

        with pytest.raises(PortsExhausted, match="no free port"):
            allocator.allocate_rest_port()
