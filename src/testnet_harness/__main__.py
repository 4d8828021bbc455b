"""
Test harness command-line entry point.

Inspect a topology file or run a standalone mock peer.

Usage::

    python -m testnet_harness order topology.yaml
    python -m testnet_harness mock --port 9001 --protocol-version bft

Commands:
    order   Validate a topology file and print its spawn order
    mock    Serve a mock wire-protocol peer until interrupted, then print its call log
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import yaml
from pydantic import ValidationError

from testnet_harness.mock import MockBuilder
from testnet_harness.topology import Topology, TopologyError
from testnet_harness.wire import ProtocolVersion

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors for better readability."""

    CYAN = "\x1b[38;5;51m"
    BLUE = "\x1b[38;5;39m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[38;5;244m",
        logging.INFO: "\x1b[38;5;40m",
        logging.WARNING: "\x1b[38;5;220m",
        logging.ERROR: "\x1b[38;5;196m",
        logging.CRITICAL: "\x1b[38;5;196;1m",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        timestamp = f"{self.CYAN}{self.formatTime(record, self.datefmt)}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"
        return f"{timestamp} {levelname} {name}: {record.getMessage()}"


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure logging for the harness with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)
    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def _protocol_version(value: str) -> ProtocolVersion:
    try:
        return ProtocolVersion[value.upper()]
    except KeyError:
        choices = ", ".join(v.name.lower() for v in ProtocolVersion)
        message = f"unknown protocol version {value!r} ({choices})"
        raise argparse.ArgumentTypeError(message) from None


def run_order(path: Path) -> int:
    """Print the spawn order of the topology in ``path``, one alias per line."""
    try:
        topology = Topology.from_yaml(path)
    except TopologyError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except KeyError as exc:
        print(f"error: {path}: node entry without {exc.args[0]!r}", file=sys.stderr)
        return 1
    except (ValidationError, yaml.YAMLError, OSError) as exc:
        print(f"error: {path}: {exc}", file=sys.stderr)
        return 1

    for alias in topology.spawn_order:
        peers = ", ".join(topology.trusted_peers(alias))
        print(f"{alias}" + (f" (trusts {peers})" if peers else ""))
    return 0


def run_mock(host: str, port: int, version: ProtocolVersion, duration: float | None) -> int:
    """Serve a mock peer until interrupted or ``duration`` elapses."""
    controller = (
        MockBuilder().with_host(host).with_port(port).with_protocol_version(version).start()
    )
    genesis = controller.server.genesis.id
    logger.info("Mock peer at %s (%s), genesis %s", controller.url, version.name, genesis)

    try:
        if duration is None:
            while True:
                time.sleep(1)
        else:
            time.sleep(duration)
    except KeyboardInterrupt:
        logger.info("Interrupted")

    entries = controller.server.call_log.close()
    controller.stop()
    for entry in entries:
        print(f"{entry.ordinal}\t{entry.timestamp:.3f}\t{entry.method.value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="testnet_harness",
        description="Blockchain test network harness",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    order = commands.add_parser("order", help="Print the spawn order of a topology file")
    order.add_argument("topology", type=Path, help="Path to the topology YAML file")

    mock = commands.add_parser("mock", help="Serve a mock wire-protocol peer")
    mock.add_argument("--host", default="127.0.0.1", help="Listen address (default: 127.0.0.1)")
    mock.add_argument("--port", type=int, default=0, help="Listen port (default: any free port)")
    mock.add_argument(
        "--protocol-version",
        type=_protocol_version,
        default=ProtocolVersion.GENESIS_PRAOS,
        help="Version advertised in the handshake: bft or genesis_praos (default)",
    )
    mock.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds instead of waiting for Ctrl-C",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.no_color)

    if args.command == "order":
        return run_order(args.topology)
    return run_mock(args.host, args.port, args.protocol_version, args.duration)


if __name__ == "__main__":
    sys.exit(main())
