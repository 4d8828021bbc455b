"""
Node process control.

`NodeProcessController` launches a node binary as an OS process, follows it
through bootstrap and stops it, either gracefully through the REST API or by
signal during teardown. `NodeHandle` is what tests hold on to: the process,
its REST and wire clients, its captured logs and its lifecycle state.

Every polling loop here is blocking. Tests drive one network from one thread;
the only background work is the log capture thread of each process.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from testnet_harness import metrics
from testnet_harness.config import HARNESS_LOG_BUFFER_LINES, HARNESS_NODE_COMMAND
from testnet_harness.rest import (
    AccountState,
    FragmentLog,
    FragmentsProcessingSummary,
    NodeRestClient,
    NodeState,
    RestError,
)
from testnet_harness.topology import NodeDescriptor
from testnet_harness.wire import Fragment, WireClient

from .config import (
    BOOTSTRAP_POLL_INTERVAL,
    BOOTSTRAP_TIMEOUT,
    KILL_GRACE,
    LOG_CAPTURE_JOIN_TIMEOUT,
    LOG_TAIL_LINES,
    MIN_STATUS_TIMEOUT,
    SHUTDOWN_TIMEOUT,
)
from .errors import (
    BootstrapTimeout,
    CannotSpawnNode,
    InvalidStateTransition,
    NodeExitedDuringBootstrap,
    NodeFailedToShutdown,
    PortUnavailable,
    ShutdownProcedure,
)
from .logs import LogLevel, LogLine, NodeLogBuffer, capture_stream
from .settings import NodeSettings, port_is_free
from .states import NodeLifecycleState

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class NodeHandle:
    """
    A spawned node as seen by a test.

    State changes go through `NodeProcessController`; the handle only exposes
    them. Reads of chain data delegate to the REST client and raise
    `RestError` when the node does not answer.
    """

    descriptor: NodeDescriptor
    """Declaration the node was spawned from."""

    settings: NodeSettings
    """Ports, paths and peers of the process."""

    logs: NodeLogBuffer
    """Captured output of the process."""

    rest: NodeRestClient
    """Client of the node's REST API."""

    process: subprocess.Popen[str] | None = None
    """The OS process, once launched."""

    state: NodeLifecycleState = NodeLifecycleState.NOT_STARTED
    """Current lifecycle state."""

    failure_reason: str | None = None
    """Why the node moved to FAILED."""

    spawned_at: float = 0.0
    """Monotonic timestamp of the launch."""

    _wire: WireClient | None = field(default=None, repr=False)
    _log_thread: threading.Thread | None = field(default=None, repr=False)

    @property
    def alias(self) -> str:
        return self.descriptor.alias

    @property
    def working_dir(self) -> Path:
        return self.settings.working_dir

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def exit_code(self) -> int | None:
        """Exit status of the process, or None while it runs."""
        return self.process.poll() if self.process is not None else None

    def is_alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    @property
    def wire(self) -> WireClient:
        """Client of the node's wire-protocol endpoint, created on first use."""
        if self._wire is None:
            self._wire = WireClient(self.settings.wire_url)
        return self._wire

    def join_log_capture(self, timeout: float = LOG_CAPTURE_JOIN_TIMEOUT) -> None:
        """Wait for the capture thread to copy the remaining output."""
        if self._log_thread is not None:
            self._log_thread.join(timeout)

    def close_clients(self) -> None:
        """Release the HTTP connection pools of this handle."""
        self.rest.close()
        if self._wire is not None:
            self._wire.close()
            self._wire = None

    # -------------------------------------------------------------------------
    # Log access
    # -------------------------------------------------------------------------

    def log_tail(self, n: int = LOG_TAIL_LINES) -> list[str]:
        return self.logs.tail(n)

    def error_lines(self) -> list[LogLine]:
        """Captured ERROR records."""
        return self.logs.lines_with_level(LogLevel.ERROR)

    # -------------------------------------------------------------------------
    # Chain reads and fragment submission
    # -------------------------------------------------------------------------

    def tip(self) -> str:
        return self.rest.tip()

    def last_block_height(self) -> int | None:
        return self.rest.stats().last_block_height

    def fragment_logs(self) -> dict[str, FragmentLog]:
        return self.rest.fragment_logs()

    def send_fragment(self, fragment: Fragment) -> str:
        return self.rest.send_fragment(fragment)

    def send_fragment_batch(
        self, fragments: Sequence[Fragment], fail_fast: bool
    ) -> FragmentsProcessingSummary:
        return self.rest.send_fragment_batch(fragments, fail_fast)

    def account_state(self, address: str) -> AccountState:
        return self.rest.account_state(address)

    def __repr__(self) -> str:
        return f"NodeHandle(alias={self.alias!r}, state={self.state.name}, pid={self.pid})"


@dataclass(slots=True)
class NodeProcessController:
    """Launches node processes and moves them through their lifecycle."""

    command: tuple[str, ...] = field(default_factory=lambda: tuple(HARNESS_NODE_COMMAND))
    """Command that starts a node; ``--config <path>`` is appended."""

    poll_interval: float = BOOTSTRAP_POLL_INTERVAL
    """Seconds between two status polls while bootstrapping."""

    kill_grace: float = KILL_GRACE
    """Seconds between SIGTERM and SIGKILL in `kill`."""

    log_buffer_lines: int = HARNESS_LOG_BUFFER_LINES
    """Capacity of each node's log buffer."""

    env: Mapping[str, str] | None = None
    """Extra environment variables for the node processes."""

    def _transition(
        self,
        handle: NodeHandle,
        target: NodeLifecycleState,
        reason: str | None = None,
    ) -> None:
        current = handle.state
        if not current.can_transition_to(target):
            raise InvalidStateTransition(handle.alias, current, target)

        handle.state = target
        if target is NodeLifecycleState.FAILED:
            handle.failure_reason = reason
            logger.warning("Node %s: %s -> FAILED (%s)", handle.alias, current.name, reason)
        else:
            logger.info("Node %s: %s -> %s", handle.alias, current.name, target.name)

    def spawn(self, descriptor: NodeDescriptor, settings: NodeSettings) -> NodeHandle:
        """
        Launch a node process.

        Both ports are checked before anything is written or started. The
        returned handle is BOOTSTRAPPING; call `wait_for_bootstrap` next.

        Raises:
            PortUnavailable: If the REST or P2P port is already bound.
            CannotSpawnNode: If the process could not be started.
        """
        for port in (settings.rest_port, settings.p2p_port):
            if not port_is_free(port, settings.host):
                raise PortUnavailable(port, settings.host)

        config_path = settings.write_config(descriptor)
        handle = NodeHandle(
            descriptor=descriptor,
            settings=settings,
            logs=NodeLogBuffer(max_lines=self.log_buffer_lines),
            rest=NodeRestClient(settings.rest_url),
        )

        argv = [*self.command, "--config", str(config_path), *settings.extra_args]
        env = {**os.environ, **self.env} if self.env else None
        logger.info("Spawning node %s: %s", descriptor.alias, shlex.join(argv))

        try:
            process = subprocess.Popen(
                argv,
                cwd=settings.working_dir,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            handle.close_clients()
            raise CannotSpawnNode(descriptor.alias, str(exc)) from exc

        handle.process = process
        handle.spawned_at = time.monotonic()
        assert process.stdout is not None
        handle._log_thread = capture_stream(
            process.stdout, handle.logs, name=f"node-logs-{descriptor.alias}"
        )

        self._transition(handle, NodeLifecycleState.BOOTSTRAPPING)
        metrics.nodes_spawned.inc()
        return handle

    def wait_for_bootstrap(
        self,
        handle: NodeHandle,
        timeout: float = BOOTSTRAP_TIMEOUT,
        interval: float | None = None,
    ) -> None:
        """
        Poll the status endpoint until the node reports Running.

        The timeout fires no earlier than ``timeout`` seconds after the call and
        no later than one poll interval after that. Each status request is
        limited to the time left before the deadline.

        Raises:
            InvalidStateTransition: If the node is not BOOTSTRAPPING.
            NodeExitedDuringBootstrap: If the process exits first.
            BootstrapTimeout: If ``timeout`` elapses first.
        """
        if handle.state is not NodeLifecycleState.BOOTSTRAPPING:
            raise InvalidStateTransition(handle.alias, handle.state, NodeLifecycleState.RUNNING)

        interval = self.poll_interval if interval is None else interval
        started = time.monotonic()

        while True:
            exit_code = handle.exit_code
            if exit_code is not None:
                handle.join_log_capture()
                self._transition(
                    handle,
                    NodeLifecycleState.FAILED,
                    f"process exited with code {exit_code} while bootstrapping",
                )
                raise NodeExitedDuringBootstrap(handle.alias, exit_code, handle.log_tail())

            remaining = timeout - (time.monotonic() - started)
            try:
                node_state = handle.rest.status(timeout=max(remaining, MIN_STATUS_TIMEOUT))
            except RestError as exc:
                logger.debug("Node %s status unavailable: %s", handle.alias, exc)
            else:
                if node_state is NodeState.RUNNING:
                    self._transition(handle, NodeLifecycleState.RUNNING)
                    metrics.bootstrap_time.observe(time.monotonic() - handle.spawned_at)
                    return
                logger.debug("Node %s is %s", handle.alias, node_state.value)

            elapsed = time.monotonic() - started
            if elapsed >= timeout:
                self._transition(
                    handle,
                    NodeLifecycleState.FAILED,
                    f"bootstrap timed out after {elapsed:.1f}s",
                )
                raise BootstrapTimeout(handle.alias, elapsed, handle.log_tail())

            time.sleep(min(interval, timeout - elapsed))

    def shutdown(self, handle: NodeHandle, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """
        Stop a running node through its REST API and wait for the process to exit.

        Raises:
            InvalidStateTransition: If the node is not RUNNING.
            ShutdownProcedure: If the node answers the request with a message.
            NodeFailedToShutdown: If the request fails, the process does not
                exit in time, or it exits with a non-zero status.
        """
        self._transition(handle, NodeLifecycleState.SHUTTING_DOWN)

        try:
            message = handle.rest.shutdown()
        except RestError as exc:
            self._transition(handle, NodeLifecycleState.FAILED, str(exc))
            raise NodeFailedToShutdown(handle.alias, str(exc), handle.log_tail()) from exc

        if message:
            self._transition(handle, NodeLifecycleState.FAILED, message)
            raise ShutdownProcedure(handle.alias, message, handle.log_tail())

        assert handle.process is not None
        try:
            exit_code = handle.process.wait(timeout)
        except subprocess.TimeoutExpired:
            cause = f"process still running {timeout:.1f}s after the shutdown request"
            self._terminate(handle)
            self._transition(handle, NodeLifecycleState.FAILED, cause)
            raise NodeFailedToShutdown(handle.alias, cause, handle.log_tail()) from None
        finally:
            handle.join_log_capture()
            handle.close_clients()

        if exit_code != 0:
            cause = f"process exited with code {exit_code}"
            self._transition(handle, NodeLifecycleState.FAILED, cause)
            raise NodeFailedToShutdown(handle.alias, cause, handle.log_tail())

        self._transition(handle, NodeLifecycleState.STOPPED)

    def _terminate(self, handle: NodeHandle) -> None:
        process = handle.process
        if process is None or process.poll() is not None:
            return

        process.terminate()
        try:
            process.wait(self.kill_grace)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Node %s ignored SIGTERM for %.1fs, killing", handle.alias, self.kill_grace
            )
            process.kill()
            process.wait()

    def kill(self, handle: NodeHandle) -> None:
        """
        Stop the process by signal, whatever its state.

        Used for teardown. A BOOTSTRAPPING or RUNNING node ends up STOPPED;
        terminal states are kept.
        """
        self._terminate(handle)
        handle.join_log_capture()
        handle.close_clients()
        if handle.state.can_transition_to(NodeLifecycleState.STOPPED):
            self._transition(handle, NodeLifecycleState.STOPPED)
