"""
Trust topology of a test network.

Validates node declarations and computes the order in which nodes are launched.
"""

from .descriptor import LeadershipMode, NodeDescriptor, PersistenceMode
from .errors import CircularTrust, DuplicateAlias, TopologyError, UnknownPeer
from .graph import Topology, TopologyBuilder
from .patterns import cascade, chain, full_trust, star

__all__ = [
    # Declarations
    "LeadershipMode",
    "NodeDescriptor",
    "PersistenceMode",
    # Graph
    "Topology",
    "TopologyBuilder",
    # Errors
    "CircularTrust",
    "DuplicateAlias",
    "TopologyError",
    "UnknownPeer",
    # Patterns
    "cascade",
    "chain",
    "full_trust",
    "star",
]
