"""
Network topology patterns for test networks.

Each pattern returns node descriptors in declaration order. Every pattern is
acyclic, so the result can be passed straight to `Topology.build`.
"""

from __future__ import annotations

from collections.abc import Sequence

from .descriptor import NodeDescriptor


def chain(aliases: Sequence[str]) -> list[NodeDescriptor]:
    """
    Linear chain: each node trusts the node declared before it.

    Creates n-1 trust edges total::

        aliases[0] <- aliases[1] <- ... <- aliases[n-1]

    Args:
        aliases: Node names in chain order.

    Returns:
        Node descriptors.
    """
    return [
        NodeDescriptor(alias=alias, trusted_peers=(aliases[i - 1],) if i > 0 else ())
        for i, alias in enumerate(aliases)
    ]


def star(hub: str, leaves: Sequence[str]) -> list[NodeDescriptor]:
    """
    All leaf nodes trust a central hub node.

    Creates len(leaves) trust edges total.

    Args:
        hub: Alias of the hub node.
        leaves: Aliases of the nodes that trust the hub.

    Returns:
        Node descriptors, hub first.
    """
    return [NodeDescriptor(alias=hub)] + [
        NodeDescriptor(alias=leaf, trusted_peers=(hub,)) for leaf in leaves
    ]


def full_trust(aliases: Sequence[str]) -> list[NodeDescriptor]:
    """
    Every node trusts every node declared before it.

    The acyclic equivalent of a full mesh: once all nodes have dialed their
    trusted peers, every pair is connected. Creates n*(n-1)/2 trust edges.

    Args:
        aliases: Node names in declaration order.

    Returns:
        Node descriptors.
    """
    return [
        NodeDescriptor(alias=alias, trusted_peers=tuple(reversed(aliases[:i])))
        for i, alias in enumerate(aliases)
    ]


def cascade(aliases: Sequence[str], fan_in: int = 2) -> list[NodeDescriptor]:
    """
    Each node trusts up to ``fan_in`` of its nearest predecessors.

    With the default fan-in of two, five leaders produce::

        L1
        L2 -> L1
        L3 -> L2, L1
        L4 -> L3, L2
        L5 -> L4, L3

    Args:
        aliases: Node names in declaration order.
        fan_in: Maximum number of trusted predecessors per node.

    Returns:
        Node descriptors.
    """
    if fan_in < 1:
        raise ValueError(f"fan_in must be at least 1, got {fan_in}")
    return [
        NodeDescriptor(alias=alias, trusted_peers=tuple(reversed(aliases[max(0, i - fan_in) : i])))
        for i, alias in enumerate(aliases)
    ]
