"""
Port allocation for test networks.

Provides thread-safe allocation of REST and P2P ports for the nodes of a
network. Ports already bound on the host are skipped.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Final

from testnet_harness.node import port_is_free
from testnet_harness.node.config import LOCALHOST

BASE_REST_PORT: Final[int] = 18400
"""Starting port for node REST APIs."""

BASE_P2P_PORT: Final[int] = 19400
"""Starting port for node wire-protocol listeners."""

PORT_RANGE: Final[int] = 1000
"""Number of candidate ports above each base."""


class PortsExhausted(RuntimeError):
    """Every candidate port of a range is taken."""


@dataclass(slots=True)
class PortAllocator:
    """
    Thread-safe port allocator for test nodes.

    Each node gets a unique (REST, P2P) pair. A port is handed out at most
    once per allocator, and only if it can be bound at allocation time.
    """

    host: str = LOCALHOST
    """Interface the ports are checked on."""

    rest_base: int = BASE_REST_PORT
    """First candidate REST port."""

    p2p_base: int = BASE_P2P_PORT
    """First candidate P2P port."""

    _rest_counter: int = field(default=0)
    """Current REST port offset."""

    _p2p_counter: int = field(default=0)
    """Current P2P port offset."""

    _lock: threading.Lock = field(default_factory=threading.Lock)
    """Thread lock for concurrent access."""

    def _next_free(self, base: int, offset: int) -> tuple[int, int]:
        for candidate in range(offset, PORT_RANGE):
            if port_is_free(base + candidate, self.host):
                return base + candidate, candidate + 1
        raise PortsExhausted(f"no free port in {base}..{base + PORT_RANGE - 1}")

    def allocate_rest_port(self) -> int:
        """Allocate a REST port."""
        with self._lock:
            port, self._rest_counter = self._next_free(self.rest_base, self._rest_counter)
            return port

    def allocate_p2p_port(self) -> int:
        """Allocate a P2P port."""
        with self._lock:
            port, self._p2p_counter = self._next_free(self.p2p_base, self._p2p_counter)
            return port

    def allocate_ports(self) -> tuple[int, int]:
        """
        Allocate both ports for a node.

        Returns:
            Tuple of (rest_port, p2p_port).
        """
        return self.allocate_rest_port(), self.allocate_p2p_port()

    def reset(self) -> None:
        """Reset counters to initial state."""
        with self._lock:
            self._rest_counter = 0
            self._p2p_counter = 0
