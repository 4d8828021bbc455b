"""
Runtime settings of one node and the configuration file derived from them.

The harness writes a YAML configuration into the node's working directory
before launching it::

    alias: B
    leadership: leader
    storage: /tmp/run/B/storage
    genesis: /tmp/run/genesis.yaml
    log:
      - level: info
        format: json
        output: stderr
    rest:
      listen: 127.0.0.1:8444
    p2p:
      listen: 127.0.0.1:9002
      public_address: /ip4/127.0.0.1/tcp/9002
      trusted_peers:
        - address: /ip4/127.0.0.1/tcp/9001
          alias: A

Logs are requested as JSON on stderr so the capture thread can parse them.
"""

from __future__ import annotations

import errno
import socket
from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator

from testnet_harness.topology import LeadershipMode, NodeDescriptor, PersistenceMode
from testnet_harness.types import StrictBaseModel

from .config import BOOTSTRAP_TIMEOUT, LOCALHOST, NODE_CONFIG_FILE


def port_is_free(port: int, host: str = LOCALHOST) -> bool:
    """
    Check if ``port`` can be bound on ``host``.

    The test socket is closed immediately, so the answer only holds until
    another process claims the port.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as exc:
            if exc.errno in (errno.EADDRINUSE, errno.EACCES):
                return False
            raise
    return True


class TrustedPeerAddress(StrictBaseModel):
    """Address of a peer the node dials at startup."""

    alias: str
    address: str


class NodeSettings(StrictBaseModel):
    """Ports, paths and peers of one node process."""

    alias: str
    """Alias of the node these settings belong to."""

    working_dir: Path
    """Directory owning the node's config, storage and artifacts."""

    rest_port: int
    """Port of the REST API."""

    p2p_port: int
    """Port of the peer-to-peer wire protocol."""

    host: str = LOCALHOST
    """Interface both servers bind to."""

    trusted_peers: tuple[TrustedPeerAddress, ...] = ()
    """Peers dialed at startup."""

    genesis_path: Path | None = None
    """Genesis description shared by every node of the network."""

    log_level: str = "info"
    """Minimum level of the node's own logging."""

    extra_args: tuple[str, ...] = ()
    """Additional command-line arguments for the node binary."""

    @field_validator("working_dir", "genesis_path", mode="before")
    @classmethod
    def _to_path(cls, value: Any) -> Any:
        return Path(value) if isinstance(value, str) else value

    @field_validator("trusted_peers", "extra_args", mode="before")
    @classmethod
    def _to_tuple(cls, value: Any) -> Any:
        return tuple(value) if isinstance(value, list) else value

    @property
    def rest_url(self) -> str:
        """Root URL of the REST API."""
        return f"http://{self.host}:{self.rest_port}"

    @property
    def wire_url(self) -> str:
        """Root URL of the wire-protocol endpoint."""
        return f"http://{self.host}:{self.p2p_port}"

    @property
    def p2p_address(self) -> str:
        """Public multiaddress other nodes use to reach this one."""
        return f"/ip4/{self.host}/tcp/{self.p2p_port}"

    @property
    def config_path(self) -> Path:
        """Location of the generated configuration file."""
        return self.working_dir / NODE_CONFIG_FILE

    @property
    def storage_dir(self) -> Path:
        """Location of the chain storage for persistent nodes."""
        return self.working_dir / "storage"

    def node_config(self, descriptor: NodeDescriptor) -> dict[str, Any]:
        """
        Build the node configuration document.

        Args:
            descriptor: Declaration of the node (leadership and persistence).

        Returns:
            A plain mapping ready to be dumped as YAML.
        """
        config: dict[str, Any] = {
            "alias": descriptor.alias,
            "leadership": descriptor.leadership.value,
            "log": [{"level": self.log_level, "format": "json", "output": "stderr"}],
            "rest": {"listen": f"{self.host}:{self.rest_port}"},
            "p2p": {
                "listen": f"{self.host}:{self.p2p_port}",
                "public_address": self.p2p_address,
                "trusted_peers": [peer.model_dump() for peer in self.trusted_peers],
            },
        }
        if descriptor.persistence is PersistenceMode.PERSISTENT:
            config["storage"] = str(self.storage_dir)
        if self.genesis_path is not None:
            config["genesis"] = str(self.genesis_path)
        return config

    def write_config(self, descriptor: NodeDescriptor) -> Path:
        """Write the configuration file into the working directory and return its path."""
        self.working_dir.mkdir(parents=True, exist_ok=True)
        with self.config_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(self.node_config(descriptor), f, sort_keys=False)
        return self.config_path


class SpawnParams(StrictBaseModel):
    """Per-spawn overrides for one node of a network."""

    alias: str
    """Alias of the node to spawn."""

    leadership: LeadershipMode | None = None
    """Override of the declared leadership mode."""

    persistence: PersistenceMode | None = None
    """Override of the declared persistence mode."""

    log_level: str = "info"
    """Minimum level of the node's own logging."""

    bootstrap_timeout: float = BOOTSTRAP_TIMEOUT
    """Seconds to wait for the node to report Running."""

    extra_args: tuple[str, ...] = ()
    """Additional command-line arguments for the node binary."""

    @field_validator("extra_args", mode="before")
    @classmethod
    def _to_tuple(cls, value: Any) -> Any:
        return tuple(value) if isinstance(value, list) else value

    def apply(self, descriptor: NodeDescriptor) -> NodeDescriptor:
        """Return ``descriptor`` with this spawn's overrides applied."""
        update: dict[str, Any] = {}
        if self.leadership is not None:
            update["leadership"] = self.leadership
        if self.persistence is not None:
            update["persistence"] = self.persistence
        return descriptor.model_copy(update=update) if update else descriptor
