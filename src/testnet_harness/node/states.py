"""Node process lifecycle state machine."""

from __future__ import annotations

from enum import Enum, auto


class NodeLifecycleState(Enum):
    """
    Lifecycle of one node process, as seen by the harness.

    State Machine Diagram
    ---------------------
    ::

        NOT_STARTED --> BOOTSTRAPPING --> RUNNING --> SHUTTING_DOWN --> STOPPED
                             |   |           |  |          |
                             |   +-----------+--+----------+--> FAILED
                             +---------------+-----------------> STOPPED (kill)

    Transitions
    -----------
    NOT_STARTED -> BOOTSTRAPPING
        - Triggered when: the process was launched
    BOOTSTRAPPING -> RUNNING
        - Triggered when: the status endpoint reports Running
    RUNNING -> SHUTTING_DOWN
        - Triggered when: a graceful shutdown was requested
    SHUTTING_DOWN -> STOPPED
        - Triggered when: the process exited cleanly
    BOOTSTRAPPING | RUNNING | SHUTTING_DOWN -> FAILED
        - Triggered when: a bootstrap, health or shutdown check failed
    BOOTSTRAPPING | RUNNING -> STOPPED
        - Triggered when: the process was killed during teardown

    STOPPED and FAILED are terminal.
    """

    NOT_STARTED = auto()
    """Handle created, no process yet."""

    BOOTSTRAPPING = auto()
    """Process launched; waiting for the node to report Running."""

    RUNNING = auto()
    """Node reported Running; it accepts fragments and serves peers."""

    SHUTTING_DOWN = auto()
    """Graceful shutdown requested; waiting for the process to exit."""

    STOPPED = auto()
    """Process exited cleanly or was killed during teardown."""

    FAILED = auto()
    """A lifecycle check failed. The reason is kept on the handle."""

    def can_transition_to(self, target: NodeLifecycleState) -> bool:
        """
        Check if transition to target state is valid.

        Args:
            target: The proposed target state.

        Returns:
            True if the transition is allowed by the state machine rules.
        """
        return target in _VALID_TRANSITIONS.get(self, set())

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return not _VALID_TRANSITIONS.get(self)

    @property
    def has_process(self) -> bool:
        """Check if an OS process may still be alive in this state."""
        return self in {
            NodeLifecycleState.BOOTSTRAPPING,
            NodeLifecycleState.RUNNING,
            NodeLifecycleState.SHUTTING_DOWN,
        }


_VALID_TRANSITIONS: dict[NodeLifecycleState, set[NodeLifecycleState]] = {
    NodeLifecycleState.NOT_STARTED: {NodeLifecycleState.BOOTSTRAPPING},
    NodeLifecycleState.BOOTSTRAPPING: {
        NodeLifecycleState.RUNNING,
        NodeLifecycleState.FAILED,
        NodeLifecycleState.STOPPED,
    },
    NodeLifecycleState.RUNNING: {
        NodeLifecycleState.SHUTTING_DOWN,
        NodeLifecycleState.FAILED,
        NodeLifecycleState.STOPPED,
    },
    NodeLifecycleState.SHUTTING_DOWN: {NodeLifecycleState.STOPPED, NodeLifecycleState.FAILED},
    NodeLifecycleState.STOPPED: set(),
    NodeLifecycleState.FAILED: set(),
}
"""Valid state transitions for the node lifecycle state machine."""
