"""
Trust-topology graph and deterministic spawn ordering.

A topology is the declared set of nodes for one test run plus the directed
"X trusts Y" relation between them. The relation serves two purposes:

- Peer bootstrap: a node dials its trusted peers at startup.
- Spawn ordering: a node is launched only after every peer it trusts is
  already listening, which removes connection races from test setup.

Ordering requires the trust graph to be acyclic. Real peer-to-peer networks
tolerate trust cycles; the harness does not, because a cycle has no valid
launch order.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from types import MappingProxyType

import yaml

from .descriptor import NodeDescriptor
from .errors import CircularTrust, DuplicateAlias, UnknownPeer


class _Mark(Enum):
    """Visit state of a node during cycle detection."""

    UNVISITED = auto()
    IN_PROGRESS = auto()
    DONE = auto()


def _find_cycle(adjacency: Mapping[str, tuple[str, ...]], order: list[str]) -> list[str] | None:
    """
    Search the trust graph for a cycle with an iterative depth-first traversal.

    Every node moves UNVISITED -> IN_PROGRESS -> DONE. Reaching a node that is
    still IN_PROGRESS means the current path loops back onto itself.

    Args:
        adjacency: Trusted peers of each alias.
        order: Aliases in declaration order (fixes the traversal order).

    Returns:
        The cycle as a list of aliases with the first alias repeated at the end,
        or None if the graph is acyclic.
    """
    marks = {alias: _Mark.UNVISITED for alias in order}

    for root in order:
        if marks[root] is not _Mark.UNVISITED:
            continue

        marks[root] = _Mark.IN_PROGRESS
        path = [root]
        pending: list[Iterator[str]] = [iter(adjacency[root])]

        while pending:
            peer = next(pending[-1], None)

            # All peers of the node on top of the path are explored.
            if peer is None:
                pending.pop()
                marks[path.pop()] = _Mark.DONE
                continue

            mark = marks[peer]
            if mark is _Mark.IN_PROGRESS:
                return path[path.index(peer) :] + [peer]
            if mark is _Mark.UNVISITED:
                marks[peer] = _Mark.IN_PROGRESS
                path.append(peer)
                pending.append(iter(adjacency[peer]))

    return None


def _spawn_order(adjacency: Mapping[str, tuple[str, ...]], order: list[str]) -> tuple[str, ...]:
    """
    Topologically sort the trust graph with Kahn's algorithm.

    A node becomes ready once all the peers it trusts are placed. Among ready
    nodes the earliest declared one goes first, so the result depends only on
    the declarations.
    """
    position = {alias: index for index, alias in enumerate(order)}
    unmet = {alias: len(adjacency[alias]) for alias in order}

    dependents: dict[str, list[str]] = {alias: [] for alias in order}
    for alias in order:
        for peer in adjacency[alias]:
            dependents[peer].append(alias)

    ready = [position[alias] for alias in order if unmet[alias] == 0]
    heapq.heapify(ready)

    result: list[str] = []
    while ready:
        alias = order[heapq.heappop(ready)]
        result.append(alias)
        for dependent in dependents[alias]:
            unmet[dependent] -= 1
            if unmet[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    # Unreachable after cycle detection; kept as an invariant check.
    assert len(result) == len(order), "trust graph must be acyclic before ordering"
    return tuple(result)


@dataclass(frozen=True, slots=True)
class Topology:
    """
    A validated, read-only test network topology.

    Built once through `Topology.build`; never mutated afterwards.
    """

    nodes: Mapping[str, NodeDescriptor]
    """Descriptors by alias, in declaration order."""

    spawn_order: tuple[str, ...]
    """Launch order: every node appears after all the nodes it trusts."""

    @classmethod
    def build(cls, descriptors: Iterable[NodeDescriptor]) -> Topology:
        """
        Validate node declarations and compute the spawn order.

        Args:
            descriptors: Node declarations in declaration order.

        Returns:
            The validated topology.

        Raises:
            DuplicateAlias: If an alias is declared twice.
            UnknownPeer: If a trust edge names an undeclared node.
            CircularTrust: If trust edges form a cycle.
        """
        nodes: dict[str, NodeDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.alias in nodes:
                raise DuplicateAlias(descriptor.alias)
            nodes[descriptor.alias] = descriptor

        order = list(nodes)
        adjacency = {alias: nodes[alias].trusted_peers for alias in order}

        for alias in order:
            for peer in adjacency[alias]:
                if peer not in nodes:
                    raise UnknownPeer(peer, trusted_by=alias)

        cycle = _find_cycle(adjacency, order)
        if cycle is not None:
            raise CircularTrust(cycle)

        return cls(nodes=MappingProxyType(nodes), spawn_order=_spawn_order(adjacency, order))

    @classmethod
    def builder(cls) -> TopologyBuilder:
        """Start a fluent topology declaration."""
        return TopologyBuilder()

    @classmethod
    def from_yaml(cls, path: Path) -> Topology:
        """
        Load and validate a topology from a YAML file.

        Expected format::

            nodes:
              - alias: Leader1
              - alias: Leader2
                trusted_peers: [Leader1]
                persistence: inmemory
              - alias: Passive
                trusted_peers: [Leader1, Leader2]
                leadership: passive

        Besides the errors of ``build``, raises ``OSError`` for an unreadable
        file, ``yaml.YAMLError`` for invalid YAML, ``KeyError`` for an entry
        without an alias and ``pydantic.ValidationError`` for a bad field.
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        entries = data.get("nodes", [])
        return cls.build(
            NodeDescriptor(
                alias=str(entry["alias"]),
                trusted_peers=tuple(str(peer) for peer in entry.get("trusted_peers", ())),
                leadership=entry.get("leadership", "leader"),
                persistence=entry.get("persistence", "persistent"),
            )
            for entry in entries
        )

    def __getitem__(self, alias: str) -> NodeDescriptor:
        return self.nodes[alias]

    def __contains__(self, alias: object) -> bool:
        return alias in self.nodes

    def __iter__(self) -> Iterator[NodeDescriptor]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def trusted_peers(self, alias: str) -> tuple[str, ...]:
        """Aliases that ``alias`` trusts."""
        return self.nodes[alias].trusted_peers

    def trusted_by(self, alias: str) -> tuple[str, ...]:
        """Aliases that trust ``alias``, in declaration order."""
        return tuple(d.alias for d in self.nodes.values() if alias in d.trusted_peers)

    def edges(self) -> list[tuple[str, str]]:
        """All trust edges as (truster, trusted) pairs."""
        return [(d.alias, peer) for d in self.nodes.values() for peer in d.trusted_peers]


@dataclass(slots=True)
class TopologyBuilder:
    """Accumulates node declarations before validation."""

    descriptors: list[NodeDescriptor] = field(default_factory=list)
    """Declarations collected so far, in declaration order."""

    def with_node(self, descriptor: NodeDescriptor) -> TopologyBuilder:
        """Declare one more node."""
        self.descriptors.append(descriptor)
        return self

    def build(self) -> Topology:
        """Validate the declarations. See `Topology.build`."""
        return Topology.build(self.descriptors)
