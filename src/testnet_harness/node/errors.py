"""Errors raised while driving a node process through its lifecycle."""

from __future__ import annotations

from collections.abc import Sequence

from testnet_harness.types import HarnessError, LogCarryingError

from .states import NodeLifecycleState


class PortUnavailable(HarnessError):
    """A port required by the node is already bound on the host."""

    def __init__(self, port: int, host: str) -> None:
        self.port = port
        self.host = host
        super().__init__(f"port {host}:{port} is already in use")


class InvalidStateTransition(HarnessError):
    """A lifecycle operation was requested from a state that does not allow it."""

    def __init__(
        self,
        alias: str,
        current: NodeLifecycleState,
        target: NodeLifecycleState,
    ) -> None:
        self.alias = alias
        self.current = current
        self.target = target
        super().__init__(
            f"node '{alias}' cannot move from {current.name} to {target.name}"
        )


class CannotSpawnNode(LogCarryingError):
    """The node process could not be launched."""

    def __init__(self, alias: str, reason: str, logs: Sequence[str] = ()) -> None:
        self.alias = alias
        self.reason = reason
        super().__init__(f"cannot spawn node '{alias}': {reason}", logs)


class BootstrapTimeout(LogCarryingError):
    """The node did not report Running within the bootstrap timeout."""

    def __init__(self, alias: str, elapsed: float, logs: Sequence[str]) -> None:
        self.alias = alias
        self.elapsed = elapsed
        super().__init__(
            f"node '{alias}' failed to bootstrap after {elapsed:.1f}s", logs
        )


class NodeExitedDuringBootstrap(LogCarryingError):
    """The node process terminated before it reported Running."""

    def __init__(self, alias: str, exit_code: int, logs: Sequence[str]) -> None:
        self.alias = alias
        self.exit_code = exit_code
        super().__init__(
            f"node '{alias}' exited with code {exit_code} while bootstrapping", logs
        )


class ShutdownProcedure(LogCarryingError):
    """
    The node answered the shutdown request with an error message.

    Attributes:
        alias: Node that refused to stop.
        shutdown_message: Body of the node's shutdown answer, verbatim.
        message: Harness description naming the node and quoting
            ``shutdown_message``.
    """

    def __init__(self, alias: str, shutdown_message: str, logs: Sequence[str]) -> None:
        self.alias = alias
        self.shutdown_message = shutdown_message
        super().__init__(f"node '{alias}' failed to shut down: {shutdown_message}", logs)


class NodeFailedToShutdown(LogCarryingError):
    """The node process did not exit cleanly after a shutdown request."""

    def __init__(self, alias: str, cause: str, logs: Sequence[str] = ()) -> None:
        self.alias = alias
        self.cause = cause
        super().__init__(f"node '{alias}' did not stop cleanly: {cause}", logs)
